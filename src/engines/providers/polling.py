"""
Asynchronous job polling.

Some providers accept a job and finish it out-of-band. AsyncJobPoller checks
the job's status URL on a fixed cadence until it reaches a terminal state or
the time budget runs out. Each status request and each sleep is cut to what
is left of the budget, so a stalled upstream ends in TIMEOUT at the deadline.
Transport failures end the wait immediately; there is no retry.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from src.core.exceptions import ErrorCode
from src.core.logging import get_logger
from src.core.metrics import record_poll_iteration
from src.engines.providers.types import GenerationResult

logger = get_logger(__name__)


class JobStatus(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED)


_STATUS_RANK = {
    JobStatus.STARTING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.SUCCEEDED: 2,
    JobStatus.FAILED: 2,
    JobStatus.CANCELED: 2,
}


class InvalidJobTransition(ValueError):
    pass


@dataclass
class AsyncJob:
    """Local view of a remote job for the duration of one poll loop."""
    id: str
    status_url: str
    status: JobStatus = JobStatus.STARTING
    output: Optional[Union[str, List[str]]] = None
    error: Optional[str] = None

    def advance(
        self,
        status: JobStatus,
        output: Optional[Union[str, List[str]]] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Record an observed status. Returns False for a stale (backward) report."""
        if self.status.is_terminal:
            if status != self.status:
                raise InvalidJobTransition(f"job {self.id} is already {self.status.value}")
            return False
        if _STATUS_RANK[status] < _STATUS_RANK[self.status]:
            return False
        self.status = status
        self.output = output
        self.error = error
        return True

    def first_output(self) -> Optional[str]:
        if isinstance(self.output, list):
            return self.output[0] if self.output else None
        return self.output or None


class AsyncJobPoller:
    def __init__(
        self,
        client_factory: Callable[[], httpx.AsyncClient],
        provider: str,
        interval: float = 1.0,
    ):
        self._client_factory = client_factory
        self.provider = provider
        self.interval = interval

    def _fail(self, code: ErrorCode, message: str) -> GenerationResult:
        return GenerationResult.failure(self.provider, code, message)

    async def poll_for_completion(
        self,
        status_url: str,
        api_key: str,
        timeout_ms: int,
        job_id: Optional[str] = None,
        model: Optional[str] = None,
    ) -> GenerationResult:
        job = AsyncJob(id=job_id or status_url.rstrip("/").rsplit("/", 1)[-1], status_url=status_url)
        headers = {"Authorization": f"Bearer {api_key}"}
        budget = timeout_ms / 1000.0
        started = time.monotonic()
        ticks = 0

        def remaining() -> float:
            return budget - (time.monotonic() - started)

        async with self._client_factory() as client:
            while True:
                left = remaining()
                if left <= 0:
                    break
                ticks += 1
                try:
                    response = await asyncio.wait_for(
                        client.get(status_url, headers=headers, timeout=left), timeout=left
                    )
                except (asyncio.TimeoutError, httpx.TimeoutException):
                    # The request was cut at the deadline
                    break
                except httpx.HTTPError as e:
                    logger.warning("poll_transport_error", job_id=job.id, error=str(e))
                    return self._fail(ErrorCode.POLL_ERROR, f"Failed to check prediction status: {e}")

                if not response.is_success:
                    logger.warning("poll_http_error", job_id=job.id, http_status=response.status_code)
                    return self._fail(
                        ErrorCode.POLL_ERROR,
                        f"Failed to check prediction status: {response.status_code} {response.reason_phrase}",
                    )

                try:
                    payload: Dict[str, Any] = response.json()
                    status = JobStatus(payload.get("status"))
                except (ValueError, AttributeError) as e:
                    return self._fail(ErrorCode.POLL_ERROR, f"Unreadable prediction status: {e}")

                job.advance(status, output=payload.get("output"), error=payload.get("error"))
                record_poll_iteration(self.provider, job.status.value)
                logger.debug("poll_tick", job_id=job.id, status=job.status.value, tick=ticks)

                if job.status is JobStatus.SUCCEEDED:
                    image_url = job.first_output()
                    if not image_url:
                        return self._fail(ErrorCode.NO_OUTPUT, "Prediction succeeded but no output was returned")
                    logger.info("poll_succeeded", job_id=job.id, ticks=ticks)
                    return GenerationResult.from_url(self.provider, image_url, model=model)

                if job.status is JobStatus.FAILED:
                    return self._fail(ErrorCode.PREDICTION_FAILED, job.error or "Prediction failed")

                if job.status is JobStatus.CANCELED:
                    return self._fail(ErrorCode.PREDICTION_CANCELED, "Prediction was canceled")

                await asyncio.sleep(max(0.0, min(self.interval, remaining())))

        logger.warning("poll_timeout", job_id=job.id, ticks=ticks, timeout_ms=timeout_ms)
        return self._fail(ErrorCode.TIMEOUT, f"Prediction timed out after {timeout_ms} ms")
