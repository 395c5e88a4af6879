"""
Video Store - where finished jobs are recorded.

Three interchangeable strategies behind one interface:
- NullVideoStore: records nothing, readiness comes from upstream
- InMemoryVideoStore: job id -> entry map for the process lifetime
- FilesystemVideoStore: video bytes saved as video-{job_id}.mp4 in a
  served directory; the file itself is the completion marker

Entries are written once, when the poller sees a job succeed, and never
updated or evicted afterward.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import aiofiles

from core.config import Config
from core.feature_flags import StoreMode, get_store_mode

logger = logging.getLogger(__name__)


@dataclass
class StoreEntry:
    """Local record of a finished job."""
    job_id: str
    generation_id: Optional[str] = None
    status: str = "completed"
    prompt: Optional[str] = None
    file_path: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class VideoStore:
    """
    Interface shared by all store strategies.

    Usage:
        store = create_store(config)

        entry = store.lookup(job_id)
        if entry:
            url = store.locator(job_id)
    """

    mode: StoreMode
    keeps_content = False

    def lookup(self, job_id: str) -> Optional[StoreEntry]:
        raise NotImplementedError

    async def put(self, entry: StoreEntry, content: Optional[bytes] = None) -> StoreEntry:
        raise NotImplementedError

    def locator(self, job_id: str) -> Optional[str]:
        """Where a client can fetch the video, None when not stored."""
        raise NotImplementedError

    def __len__(self) -> int:
        return 0


class NullVideoStore(VideoStore):
    """Stores nothing; every status check goes back to upstream."""

    mode = StoreMode.NONE

    def lookup(self, job_id: str) -> Optional[StoreEntry]:
        return None

    async def put(self, entry: StoreEntry, content: Optional[bytes] = None) -> StoreEntry:
        return entry

    def locator(self, job_id: str) -> Optional[str]:
        return None


class InMemoryVideoStore(VideoStore):
    """Process-lifetime map; lost on restart."""

    mode = StoreMode.MEMORY

    def __init__(self, download_path: str = "/download-video"):
        self._entries: dict[str, StoreEntry] = {}
        self.download_path = download_path

    def lookup(self, job_id: str) -> Optional[StoreEntry]:
        return self._entries.get(job_id)

    async def put(self, entry: StoreEntry, content: Optional[bytes] = None) -> StoreEntry:
        self._entries[entry.job_id] = entry
        logger.info(f"Stored job {entry.job_id} -> generation {entry.generation_id}")
        return entry

    def locator(self, job_id: str) -> Optional[str]:
        if job_id not in self._entries:
            return None
        return f"{self.download_path}?jobId={quote(job_id, safe='')}"

    def __len__(self) -> int:
        return len(self._entries)


class FilesystemVideoStore(VideoStore):
    """
    Saves finished videos under a served directory.

    A job is ready exactly when its file exists; there is no separate
    completion flag. Generation id and prompt are kept in-process for the
    info endpoint and are absent for files written by an earlier process.
    """

    mode = StoreMode.FILESYSTEM
    keeps_content = True

    def __init__(self, video_dir: str, public_prefix: str = "/videos"):
        self.video_dir = Path(video_dir)
        self.video_dir.mkdir(parents=True, exist_ok=True)
        self.public_prefix = public_prefix.rstrip("/")
        self._metadata: dict[str, StoreEntry] = {}

    @staticmethod
    def filename_for(job_id: str) -> str:
        return f"video-{job_id}.mp4"

    def path_for(self, job_id: str) -> Path:
        # Job ids are upstream-issued; strip path separators before joining
        safe_id = job_id.replace("/", "_").replace("\\", "_")
        return self.video_dir / self.filename_for(safe_id)

    def exists(self, job_id: str) -> bool:
        return self.path_for(job_id).is_file()

    def lookup(self, job_id: str) -> Optional[StoreEntry]:
        path = self.path_for(job_id)
        if not path.is_file():
            return None
        return self._metadata.get(job_id) or StoreEntry(job_id=job_id, file_path=str(path))

    async def put(self, entry: StoreEntry, content: Optional[bytes] = None) -> StoreEntry:
        if content is None:
            raise ValueError(f"No video content to save for job {entry.job_id}")

        path = self.path_for(entry.job_id)
        tmp_path = path.with_suffix(".part")

        # Write then rename so a half-written file never looks ready
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(content)
        tmp_path.replace(path)

        entry.file_path = str(path)
        self._metadata[entry.job_id] = entry
        logger.info(f"Saved video for job {entry.job_id}: {path} ({len(content)} bytes)")
        return entry

    def locator(self, job_id: str) -> Optional[str]:
        if not self.exists(job_id):
            return None
        return f"{self.public_prefix}/{quote(self.path_for(job_id).name, safe='')}"

    def __len__(self) -> int:
        return sum(1 for _ in self.video_dir.glob("video-*.mp4"))


def create_store(config: Config) -> VideoStore:
    """Build the store selected by VIDEO_STORE_MODE."""
    mode = get_store_mode(config.storage.mode)

    if mode == StoreMode.NONE:
        return NullVideoStore()
    if mode == StoreMode.FILESYSTEM:
        return FilesystemVideoStore(
            config.storage.video_dir,
            public_prefix=config.storage.public_prefix,
        )
    return InMemoryVideoStore()
