"""
Presentation helpers for upstream job states.

Upstream states are reported verbatim; only the progress percentage and the
human-readable message are derived here.
"""

SUCCEEDED = "succeeded"
FAILED = "failed"
TIMED_OUT = "timed_out"

DEFAULT_PROGRESS = 10

STATUS_PROGRESS = {
    "preprocessing": 20,
    "queued": 30,
    "running": 60,
    "processing": 85,
    SUCCEEDED: 100,
    FAILED: 0,
    TIMED_OUT: 0,
}

STATUS_MESSAGES = {
    "preprocessing": "Video is being prepared...",
    "queued": "Video is in queue...",
    "running": "Video is being generated...",
    "processing": "Video is processing...",
    FAILED: "Video generation failed",
    TIMED_OUT: "Video generation timed out",
}


def get_progress(status: str) -> int:
    """Progress percentage for a job state, 10 for anything unrecognized."""
    return STATUS_PROGRESS.get(status, DEFAULT_PROGRESS)


def get_status_message(status: str, video_ready: bool = False) -> str:
    if status == SUCCEEDED:
        return "Video ready!" if video_ready else "Finalizing video..."
    return STATUS_MESSAGES.get(status, f"Status: {status}")
