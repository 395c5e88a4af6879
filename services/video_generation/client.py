"""
Azure OpenAI Video Generation Client

Thin async wrapper over the video generation jobs API:
- Submit a text-to-video job
- Fetch job status
- Download finished video content
- Open streamed reads for passthrough

Calls to the configured endpoint go through a circuit breaker so a failing
upstream is not hammered by pollers and status checks.
"""

import asyncio
import httpx
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, get_upstream_breaker
from core.config import Config, GenerationDefaults, get_config

from .schemas import UpstreamJob
from .status import SUCCEEDED

logger = logging.getLogger(__name__)

RETRYABLE_ERROR_CODES = frozenset({"TIMEOUT", "REQUEST_ERROR"})


class VideoGenerationError(Exception):
    """Raised when the video service rejects or fails a request."""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        status_code: int = None,
        retryable: bool = None,
    ):
        self.error_code = error_code
        self.status_code = status_code
        self.retryable = (
            retryable if retryable is not None else error_code in RETRYABLE_ERROR_CODES
        )
        super().__init__(message)


class ConfigurationError(VideoGenerationError):
    """Raised when the endpoint or API key is missing."""

    def __init__(self, message: str = "Video service configuration missing"):
        super().__init__(message, error_code="CONFIG_MISSING")


@dataclass
class GenerationParams:
    """Requested output parameters for one job."""
    model: str
    height: int = 720
    width: int = 1280
    n_seconds: int = 5
    n_variants: int = 1

    @classmethod
    def from_defaults(cls, defaults: GenerationDefaults) -> "GenerationParams":
        return cls(
            model=defaults.model,
            height=defaults.height,
            width=defaults.width,
            n_seconds=defaults.n_seconds,
            n_variants=defaults.n_variants,
        )

    def with_overrides(self, **overrides: Any) -> "GenerationParams":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass
class GenerationRequest:
    """A prompt plus the parameters it is submitted with."""
    prompt: str
    params: GenerationParams
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_payload(self) -> dict:
        # The jobs API accepts the numeric fields as strings
        return {
            "model": self.params.model,
            "prompt": self.prompt,
            "height": str(self.params.height),
            "width": str(self.params.width),
            "n_seconds": str(self.params.n_seconds),
            "n_variants": str(self.params.n_variants),
        }


@dataclass
class SubmitResult:
    """Accepted job as returned by submission."""
    job_id: str
    status: str
    request_id: Optional[str] = None


@dataclass
class JobStatusResult:
    """Current upstream view of a job."""
    job_id: str
    status: str
    generation_id: Optional[str] = None
    prompt: Optional[str] = None
    created_at: Any = None
    finished_at: Any = None
    failure_reason: Optional[str] = None
    video_url: Optional[str] = None

    @classmethod
    def from_job(cls, job_id: str, job: UpstreamJob) -> "JobStatusResult":
        generation = job.first_generation
        return cls(
            job_id=job.id or job_id,
            status=job.status,
            generation_id=generation.id if generation else None,
            prompt=job.prompt,
            created_at=job.created_at,
            finished_at=job.finished_at,
            failure_reason=job.failure_reason,
            video_url=generation.video_url if generation else None,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED


class VideoGenerationClient:
    """
    Client for the Azure OpenAI video generation jobs API.

    Usage:
        client = VideoGenerationClient()

        submitted = await client.submit("A golden retriever running through a field")
        status = await client.fetch_status(submitted.job_id)

        if status.succeeded:
            video_bytes = await client.fetch_content(status.job_id, status.generation_id)

        await client.close()
    """

    ACCEPTED_STATUS_CODES = (201, 202)
    MAX_REDIRECTS = 5

    def __init__(
        self,
        config: Optional[Config] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the video generation client.

        Args:
            config: Optional config override
            transport: Optional httpx transport (used to fake the API in tests)
            breaker: Optional circuit breaker override
        """
        self.config = config or get_config()
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self.breaker = breaker if breaker is not None else get_upstream_breaker()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.config.upstream.http_timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def is_configured(self) -> bool:
        return self.config.upstream.is_configured

    def _require_config(self):
        if not self.is_configured:
            raise ConfigurationError()

    @property
    def _headers(self) -> dict:
        return {"Api-key": self.config.upstream.api_key}

    def _url(self, path: str) -> str:
        upstream = self.config.upstream
        return f"{upstream.base_url}/openai/v1/video/{path}?api-version={upstream.api_version}"

    def jobs_url(self) -> str:
        return self._url("generations/jobs")

    def job_url(self, job_id: str) -> str:
        return self._url(f"generations/jobs/{job_id}")

    def content_url(self, generation_id: str) -> str:
        """Deterministic content URL for a generation."""
        return self._url(f"generations/{generation_id}/content")

    def content_candidates(self, job_id: str, generation_id: str) -> list[str]:
        """Content URLs tried in order when downloading a finished video."""
        return [
            self._url(f"generations/{generation_id}/content/video"),
            self.content_url(generation_id),
            self._url(f"generations/jobs/{job_id}/content"),
        ]

    def default_params(self) -> GenerationParams:
        return GenerationParams.from_defaults(self.config.generation)

    def is_upstream_url(self, url: str) -> bool:
        """Whether a URL points at the configured video endpoint."""
        if not self.config.upstream.endpoint:
            return False
        try:
            return httpx.URL(url).host == httpx.URL(self.config.upstream.base_url).host
        except httpx.InvalidURL:
            return False

    async def _dispatch(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: dict,
        stream: bool,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request, following GET redirects by hand.

        The Api-key header is dropped as soon as a redirect leaves the
        endpoint host and is not restored on later hops.
        """
        request = client.build_request(method, url, headers=headers, **kwargs)

        for hop in range(self.MAX_REDIRECTS + 1):
            response = await client.send(request, stream=stream, follow_redirects=False)
            if hop == self.MAX_REDIRECTS or method != "GET" or not response.is_redirect:
                return response

            target = response.url.join(response.headers["Location"])
            await response.aclose()

            if not self.is_upstream_url(str(target)):
                headers = {k: v for k, v in headers.items() if k.lower() != "api-key"}
            logger.debug(f"Following redirect to {target.host}")
            request = client.build_request(method, target, headers=headers)

        return response

    async def _send(
        self,
        method: str,
        url: str,
        stream: bool = False,
        headers: Optional[dict] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send one request, mapping transport errors.

        Only calls to the configured endpoint count against the breaker;
        proxied third-party URLs bypass it.
        """
        client = await self._get_client()
        headers = headers or {}

        try:
            if self.is_upstream_url(url):
                return await self.breaker.call(
                    self._dispatch, client, method, url, headers, stream, **kwargs
                )
            return await self._dispatch(client, method, url, headers, stream, **kwargs)
        except httpx.TimeoutException as e:
            raise VideoGenerationError(
                f"Video API timeout: {type(e).__name__}",
                error_code="TIMEOUT",
            ) from e
        except httpx.RequestError as e:
            raise VideoGenerationError(
                f"Video API request failed: {type(e).__name__}: {e}",
                error_code="REQUEST_ERROR",
            ) from e
        except httpx.InvalidURL as e:
            raise VideoGenerationError(f"Invalid URL: {e}", error_code="INVALID_URL") from e
        except CircuitBreakerOpen as e:
            raise VideoGenerationError(str(e), error_code="CIRCUIT_OPEN") from e
        except asyncio.TimeoutError as e:
            raise VideoGenerationError(
                f"Video API call exceeded {self.breaker.config.timeout}s",
                error_code="TIMEOUT",
            ) from e

    async def submit(
        self,
        prompt: str,
        params: Optional[GenerationParams] = None,
    ) -> SubmitResult:
        """
        Submit a text-to-video job.

        Args:
            prompt: Text description of the video to generate
            params: Output parameters (configured defaults if None)

        Returns:
            SubmitResult with the upstream job id and initial status

        Raises:
            ConfigurationError: Endpoint or key missing; nothing is sent
            VideoGenerationError: Upstream answered with anything but 201/202
        """
        self._require_config()

        request = GenerationRequest(prompt=prompt, params=params or self.default_params())
        logger.info(
            f"Submitting video job: model={request.params.model}, prompt={prompt[:50]}..."
        )

        response = await self._send(
            "POST",
            self.jobs_url(),
            json=request.to_payload(),
            headers={**self._headers, "Content-Type": "application/json"},
        )

        if response.status_code not in self.ACCEPTED_STATUS_CODES:
            logger.error(f"Video API rejected job: {response.status_code} {response.text[:200]}")
            raise VideoGenerationError(
                f"Video service error: {response.status_code} - {response.text}",
                error_code=f"HTTP_{response.status_code}",
                status_code=response.status_code,
            )

        try:
            job = UpstreamJob.model_validate(response.json())
        except ValueError as e:
            raise VideoGenerationError(
                f"Invalid response from video service: {e}",
                error_code="INVALID_RESPONSE",
                status_code=response.status_code,
            ) from e

        if not job.id:
            raise VideoGenerationError(
                "No job id in video service response",
                error_code="NO_JOB_ID",
                status_code=response.status_code,
            )

        logger.info(f"Video job created: {job.id} ({job.status})")
        return SubmitResult(job_id=job.id, status=job.status, request_id=request.request_id)

    async def fetch_status(self, job_id: str) -> JobStatusResult:
        """
        Fetch the current status of a job.

        Raises:
            VideoGenerationError: On any non-success HTTP status
        """
        self._require_config()

        response = await self._send("GET", self.job_url(job_id), headers=self._headers)

        if not response.is_success:
            raise VideoGenerationError(
                f"Status check failed: {response.status_code}",
                error_code=f"HTTP_{response.status_code}",
                status_code=response.status_code,
            )

        try:
            job = UpstreamJob.model_validate(response.json())
        except ValueError as e:
            raise VideoGenerationError(
                f"Invalid status response: {e}",
                error_code="INVALID_RESPONSE",
                status_code=response.status_code,
            ) from e

        return JobStatusResult.from_job(job_id, job)

    async def fetch_content(self, job_id: str, generation_id: str) -> bytes:
        """
        Download the video bytes for a finished generation.

        Candidate URLs are tried in order; the first success wins.

        Raises:
            VideoGenerationError: If every candidate fails
        """
        self._require_config()

        failures = []
        retryable = True

        for url in self.content_candidates(job_id, generation_id):
            try:
                response = await self._send("GET", url, headers=self._headers)
            except VideoGenerationError as e:
                failures.append(f"{url}: {e}")
                retryable = retryable and e.retryable
                continue

            if response.is_success:
                logger.info(
                    f"Downloaded video for job {job_id} "
                    f"({len(response.content) / 1024 / 1024:.1f} MB)"
                )
                return response.content

            failures.append(f"{url}: HTTP {response.status_code}")
            retryable = False

        logger.error(f"No content URL worked for job {job_id}: {failures}")
        raise VideoGenerationError(
            f"Video content unavailable for generation {generation_id}",
            error_code="CONTENT_UNAVAILABLE",
            retryable=retryable,
        )

    def resolve_video_url(self, status: JobStatusResult) -> Optional[str]:
        """
        Locator for a finished job's video.

        Uses the URL carried in the generation when there is one, otherwise
        the constructed content URL. None until the job has succeeded.
        """
        if not status.succeeded or not status.generation_id:
            return None
        return status.video_url or self.content_url(status.generation_id)

    async def open_stream(self, url: str) -> httpx.Response:
        """
        Open a streamed GET for passthrough.

        The API key is only sent to the configured endpoint host. The caller
        must close the returned response.
        """
        headers = self._headers if self.is_upstream_url(url) else {}
        response = await self._send("GET", url, stream=True, headers=headers)

        if not response.is_success:
            await response.aclose()
            raise VideoGenerationError(
                f"Proxy fetch failed: {response.status_code}",
                error_code=f"HTTP_{response.status_code}",
                status_code=response.status_code,
            )

        return response

    def get_circuit_breaker_status(self) -> dict:
        return self.breaker.get_status()
