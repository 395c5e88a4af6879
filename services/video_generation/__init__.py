"""
Video Generation Service

Proxies the Azure OpenAI video generation jobs API:
- Upstream client: submit, status, content download, streamed passthrough
- Status poller: bounded background polling per job
- Video store: none / in-memory / filesystem strategies
"""

from .client import (
    ConfigurationError,
    GenerationParams,
    GenerationRequest,
    JobStatusResult,
    SubmitResult,
    VideoGenerationClient,
    VideoGenerationError,
)
from .poller import PollOutcome, PollState, PollingSupervisor, StatusPoller
from .store import (
    FilesystemVideoStore,
    InMemoryVideoStore,
    NullVideoStore,
    StoreEntry,
    VideoStore,
    create_store,
)

__all__ = [
    "ConfigurationError",
    "GenerationParams",
    "GenerationRequest",
    "JobStatusResult",
    "SubmitResult",
    "VideoGenerationClient",
    "VideoGenerationError",
    "PollOutcome",
    "PollState",
    "PollingSupervisor",
    "StatusPoller",
    "FilesystemVideoStore",
    "InMemoryVideoStore",
    "NullVideoStore",
    "StoreEntry",
    "VideoStore",
    "create_store",
]
