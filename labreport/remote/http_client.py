import asyncio
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from labreport.config.settings import Settings
from labreport.logging.logger import Log
from labreport.processing.exceptions import (
    AnalysisFailedError,
    OCRFailedError,
    PermissionDeniedError,
    ProcessingTimeoutError,
    UploadFailedError,
)
from labreport.processing.models import Document
from labreport.remote.base import BaseRemoteAnalysisService
from labreport.remote.exceptions import RemoteResponseValidationError, RemoteServiceError
from labreport.remote.models import AnalysisPayload, AnalysisPreferences, StatusUpdate, UploadReceipt
from labreport.remote.validator import build_analysis, build_report_id, build_status_update

MAX_BACKOFF_SECONDS = 30.0
_AUTH_FAILURES = {401, 403}


class HttpRemoteAnalysisService(BaseRemoteAnalysisService):
    """Remote analysis service client over the lab-report REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float,
        poll_interval_seconds: float = 2.0,
        fast_poll_interval_seconds: float = 1.0,
        max_polling_seconds: float = 300.0,
        max_retry_attempts: int = 5,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds, headers=headers
        )
        self._poll_interval = poll_interval_seconds
        self._fast_poll_interval = fast_poll_interval_seconds
        self._max_polling_seconds = max_polling_seconds
        self._max_retry_attempts = max_retry_attempts
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpRemoteAnalysisService":
        return cls(
            base_url=settings.remote_base_url,
            api_key=settings.remote_api_key,
            timeout_seconds=settings.remote_timeout_seconds,
            poll_interval_seconds=settings.status_poll_interval_seconds,
            fast_poll_interval_seconds=settings.status_fast_poll_interval_seconds,
            max_polling_seconds=settings.status_max_polling_seconds,
            max_retry_attempts=settings.status_max_retry_attempts,
        )

    async def upload(self, document: Document, preferences: AnalysisPreferences) -> UploadReceipt:
        files = {"file": (document.filename, document.payload, document.mime_type)}
        data = {
            "preferences": json.dumps(
                {
                    "include_recommendations": preferences.include_recommendations,
                    "focus_areas": list(preferences.focus_areas),
                }
            )
        }
        try:
            response = await self._client.post("/lab-reports/upload", files=files, data=data)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise UploadFailedError(f"Upload network error: {exc}", recoverable=True) from exc
        except httpx.HTTPError as exc:
            raise UploadFailedError(f"Upload transport error: {exc}") from exc

        self._raise_for_auth(response)
        if response.status_code == 413:
            raise UploadFailedError(
                "Document exceeds the service's size limit",
                details=f"{document.size} bytes",
                recoverable=False,
            )
        if response.is_error:
            raise UploadFailedError(
                f"Upload rejected with HTTP {response.status_code}",
                details=response.text[:200],
                recoverable=response.status_code >= 500,
            )
        try:
            report_id = build_report_id(_json(response))
        except RemoteServiceError as exc:
            raise UploadFailedError(f"Invalid upload response: {exc}") from exc
        Log.info(f"Uploaded {document.filename} as report {report_id}")
        return UploadReceipt(report_id=report_id)

    async def status_stream(self, report_id: str) -> AsyncIterator[StatusUpdate]:
        started = time.monotonic()
        while True:
            if time.monotonic() - started > self._max_polling_seconds:
                raise ProcessingTimeoutError(
                    f"Report {report_id} did not finish within {self._max_polling_seconds}s"
                )
            retrying = AsyncRetrying(
                stop=stop_after_attempt(self._max_retry_attempts + 1),
                wait=wait_exponential(multiplier=self._poll_interval, max=MAX_BACKOFF_SECONDS),
                retry=retry_if_exception_type((httpx.HTTPError, RemoteServiceError)),
                sleep=self._sleep,
                before_sleep=lambda retry_state: Log.warning(
                    f"Status fetch for report {report_id} failed, "
                    f"retrying in {retry_state.next_action.sleep}s",
                    attempt=retry_state.attempt_number,
                ),
            )
            try:
                update = await retrying(self._fetch_status, report_id)
            except RetryError as exc:
                raise OCRFailedError(
                    f"Status polling for report {report_id} exceeded max retries",
                    details=str(exc.last_attempt.exception()),
                ) from exc

            yield update
            if update.status.is_terminal:
                return
            interval = (
                self._fast_poll_interval if update.stage.is_compute_heavy else self._poll_interval
            )
            await self._sleep(interval)

    async def get_analysis(self, report_id: str) -> AnalysisPayload:
        try:
            response = await self._client.get(f"/lab-reports/{report_id}/analysis")
        except httpx.HTTPError as exc:
            raise AnalysisFailedError(f"Analysis fetch failed: {exc}") from exc
        self._raise_for_auth(response)
        if response.is_error:
            raise AnalysisFailedError(
                f"Analysis fetch returned HTTP {response.status_code}",
                recoverable=response.status_code >= 500,
            )
        try:
            return build_analysis(_json(response))
        except RemoteServiceError as exc:
            raise AnalysisFailedError(f"Invalid analysis payload: {exc}", recoverable=False) from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _fetch_status(self, report_id: str) -> StatusUpdate:
        response = await self._client.get(f"/lab-reports/{report_id}/status")
        self._raise_for_auth(response)
        if response.is_error:
            raise RemoteServiceError(f"Status fetch returned HTTP {response.status_code}")
        return build_status_update(_json(response))

    @staticmethod
    def _raise_for_auth(response: httpx.Response) -> None:
        if response.status_code in _AUTH_FAILURES:
            raise PermissionDeniedError(
                "The analysis service denied access",
                details=f"HTTP {response.status_code}",
                recovery_suggestion="Sign in again or check that your API key is valid.",
            )


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise RemoteResponseValidationError(f"Response is not valid JSON: {exc}") from exc
