"""
Shared fixtures: a fake Azure video API served through httpx.MockTransport.
"""

import os
import sys
from typing import Optional, Union

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Config, PollingConfig, StorageConfig, UpstreamConfig

ENDPOINT = "https://example-video.openai.azure.com/"

Reply = Union[tuple[int, dict], Exception]


def job_body(status: str, job_id: str = "abc", generation_id: Optional[str] = None, **extra) -> dict:
    """A job document as the upstream API returns it."""
    body = {
        "object": "video.generation.job",
        "id": job_id,
        "status": status,
        "prompt": "a cat surfing",
        "created_at": 1747000000,
        "finished_at": None,
        "generations": [],
    }
    if generation_id:
        body["generations"] = [{"object": "video.generation", "id": generation_id}]
    body.update(extra)
    return body


class FakeVideoAPI:
    """
    Scriptable stand-in for the video generation jobs API.

    status_replies are consumed one per status request; the last one repeats.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.submit_reply: Reply = (202, {"id": "abc", "status": "queued"})
        self.status_replies: list[Reply] = [(200, job_body("queued"))]
        self.content: dict[str, bytes] = {}
        self.streams: dict[str, tuple[int, bytes]] = {}
        self.redirects: dict[str, str] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        url = f"{request.url.scheme}://{request.url.host}{path}"
        if url in self.redirects:
            return httpx.Response(302, headers={"Location": self.redirects[url]})

        if url in self.streams:
            code, data = self.streams[url]
            return httpx.Response(code, content=data)

        if request.method == "POST" and path.endswith("/video/generations/jobs"):
            return self._reply(self.submit_reply)

        if "/video/generations/jobs/" in path and not path.endswith("/content"):
            reply = self.status_replies[0]
            if len(self.status_replies) > 1:
                self.status_replies.pop(0)
            return self._reply(reply)

        if path in self.content:
            return httpx.Response(200, content=self.content[path])

        return httpx.Response(404, text="not found")

    @staticmethod
    def _reply(reply: Reply) -> httpx.Response:
        if isinstance(reply, Exception):
            raise reply
        code, body = reply
        return httpx.Response(code, json=body)

    def requests_to(self, fragment: str, method: str = "GET") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    @property
    def status_calls(self) -> int:
        return len([
            r for r in self.requests
            if r.method == "GET"
            and "/video/generations/jobs/" in r.url.path
            and not r.url.path.endswith("/content")
        ])


def make_config(
    tmp_path=None,
    mode: str = "memory",
    configured: bool = True,
    max_attempts: int = 60,
    interval_seconds: float = 10.0,
) -> Config:
    return Config(
        upstream=UpstreamConfig(
            endpoint=ENDPOINT if configured else "",
            api_key="test-key" if configured else "",
            api_version="preview",
            http_timeout=30.0,
        ),
        polling=PollingConfig(max_attempts=max_attempts, interval_seconds=interval_seconds),
        storage=StorageConfig(
            mode=mode,
            video_dir=str(tmp_path / "videos") if tmp_path else "./videos",
        ),
    )


class FakeClock:
    """Replacement for asyncio.sleep that records delays and returns at once."""

    def __init__(self):
        self.sleeps: list[float] = []

    async def sleep(self, delay: float):
        self.sleeps.append(delay)


@pytest.fixture
def fake_api() -> FakeVideoAPI:
    return FakeVideoAPI()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path) -> Config:
    return make_config(tmp_path)
