"""
Request/response models for the video proxy HTTP API.

The browser client speaks camelCase, so every model accepts and emits
camelCase aliases while keeping snake_case attribute names.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_body(self) -> dict:
        """Serialize with aliases; optional fields appear only when set."""
        skip = {
            name
            for name, info in type(self).model_fields.items()
            if info.default is None and name not in self.model_fields_set
        }
        return self.model_dump(by_alias=True, exclude=skip)


class GenerateVideoRequest(_ApiModel):
    """Request to start a video generation job."""
    prompt: Optional[str] = None
    model: Optional[str] = None
    height: Optional[int] = Field(default=None, gt=0)
    width: Optional[int] = Field(default=None, gt=0)
    n_seconds: Optional[int] = Field(default=None, gt=0, alias="nSeconds")
    n_variants: Optional[int] = Field(default=None, gt=0, alias="nVariants")


class GenerateVideoResponse(_ApiModel):
    success: bool = True
    job_id: str = Field(alias="jobId")
    status: str
    message: str
    note: Optional[str] = None


class CheckStatusRequest(_ApiModel):
    job_id: Optional[str] = Field(default=None, alias="jobId")


class VideoStatusResponse(_ApiModel):
    """Status check result; carries downloadUrl or videoUrl depending on store mode."""
    success: bool = True
    job_id: str = Field(alias="jobId")
    status: str
    progress: int
    video_ready: bool = Field(alias="videoReady")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    message: str


class VideoInfoResponse(_ApiModel):
    success: bool = True
    job_id: str = Field(alias="jobId")
    status: str
    generation_id: Optional[str] = Field(default=None, alias="generationId")
    prompt: Optional[str] = None


class ErrorResponse(_ApiModel):
    success: bool = False
    error: str
