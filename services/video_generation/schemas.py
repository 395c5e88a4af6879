"""
Typed shapes for the Azure OpenAI video generation API.

Only the fields this service reads are declared; anything else the API
returns is ignored.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Timestamp = Union[int, float, str]


class GenerationData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: Optional[str] = None


class UpstreamGeneration(BaseModel):
    """One produced output variant within a job."""

    model_config = ConfigDict(extra="ignore")

    id: str
    url: Optional[str] = None
    data: Optional[GenerationData] = None

    @property
    def video_url(self) -> Optional[str]:
        """Direct URL for this generation, when the API supplied one."""
        if self.url:
            return self.url
        if self.data and self.data.url:
            return self.data.url
        return None


class UpstreamJob(BaseModel):
    """A video generation job as reported by the API."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    status: str = "unknown"
    prompt: Optional[str] = None
    created_at: Optional[Timestamp] = None
    finished_at: Optional[Timestamp] = None
    expires_at: Optional[Timestamp] = None
    failure_reason: Optional[str] = None
    generations: list[UpstreamGeneration] = Field(default_factory=list)

    @property
    def first_generation(self) -> Optional[UpstreamGeneration]:
        return self.generations[0] if self.generations else None
