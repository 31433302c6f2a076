"""HTTP client for the Voyager verification service.

Every call goes through the module-level ``httpx`` functions so tests can
patch them; no real HTTP calls are made in tests.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from voyager.api.models import VerificationJob
from voyager.config import network_name
from voyager.payload import VerificationRequest
from voyager.utils import (
    ApiConnectionError,
    JobNotFoundError,
    PayloadTooLargeError,
    RateLimitedError,
    RequestFailure,
    SubmissionError,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_DELAY = 1.0


class _BaseClient:
    """Shared HTTP plumbing: base URL handling and the GET retry loop."""

    def __init__(
        self,
        base_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    def _url(self, *segments: str) -> str:
        return "/".join([self.base_url, *(s.strip("/") for s in segments)])

    def _get(self, url: str) -> httpx.Response:
        """Issue a GET request, retrying transport errors and 5xx responses.

        Any other response (including 4xx) is returned to the caller.
        """
        last_exc: Exception | None = None
        last_response: httpx.Response | None = None

        for attempt in range(self.max_retries):
            try:
                resp = httpx.get(url, timeout=self.timeout)
                if resp.status_code < 500:
                    return resp
                last_response = resp
                logger.warning(
                    "Request to %s returned %d (attempt %d/%d)",
                    url, resp.status_code, attempt + 1, self.max_retries,
                )
            except httpx.RequestError as exc:
                last_exc = exc
                logger.warning(
                    "Request to %s failed (attempt %d/%d): %s",
                    url, attempt + 1, self.max_retries, exc,
                )
            if attempt < self.max_retries - 1:
                time.sleep(self.retry_delay * (attempt + 1))

        if last_response is not None and last_exc is None:
            raise RequestFailure(url, last_response.status_code, last_response.text)
        raise ApiConnectionError(
            f"Failed to reach {url} after {self.max_retries} attempts",
            suggestions=[
                "Check your internet connection",
                "Verify the API URL is correct",
            ],
        ) from last_exc


class VoyagerClient(_BaseClient):
    """Client for the Voyager class verification API.

    Endpoints::

        POST {base}/class-verify/{class_hash}     submit a verification job
        GET  {base}/class-verify/job/{job_id}     job status snapshot
        GET  {base}/classes/{class_hash}          class lookup
    """

    @property
    def network(self) -> str:
        return network_name(self.base_url)

    def submit(self, request: VerificationRequest) -> str:
        """Submit a verification request and return the job id.

        Never retried: a retry after a lost response would create a
        duplicate job.
        """
        if not request.class_hash:
            raise SubmissionError("A class hash is required to submit a verification job")

        url = self._url("class-verify", request.class_hash)
        logger.debug("POST %s (%d files)", url, len(request.files))
        try:
            resp = httpx.post(url, json=request.to_payload(), timeout=self.timeout)
        except httpx.RequestError as exc:
            raise ApiConnectionError(
                f"Failed to reach {url}: {exc}",
                suggestions=[
                    "Check your internet connection",
                    "Verify the API URL is correct",
                ],
            ) from exc

        if resp.status_code == 200:
            data = self._json(url, resp)
            job_id = data.get("job_id") if isinstance(data, dict) else None
            if not job_id:
                raise RequestFailure(url, resp.status_code, f"Response has no job_id: {resp.text}")
            logger.info("Submitted verification job %s", job_id)
            return str(job_id)
        if resp.status_code == 400:
            raise RequestFailure(url, 400, _error_message(resp))
        if resp.status_code == 413:
            raise PayloadTooLargeError(url)
        if resp.status_code == 429:
            raise RateLimitedError(url, resp.headers.get("Retry-After"))
        raise RequestFailure(url, resp.status_code, resp.text)

    def get_job(self, job_id: str) -> VerificationJob:
        """Fetch the full status snapshot of a job."""
        url = self._url("class-verify", "job", job_id)
        resp = self._get(url)
        if resp.status_code == 404:
            raise JobNotFoundError(job_id)
        if resp.status_code != 200:
            raise RequestFailure(url, resp.status_code, resp.text)

        data = self._json(url, resp)
        logger.debug("Job %s raw status response: %s", job_id, data)
        if not isinstance(data, dict):
            raise RequestFailure(url, 200, f"Unexpected response: {resp.text}")
        data.setdefault("job_id", job_id)
        return VerificationJob.model_validate(data)

    def is_class_verified(self, class_hash: str) -> bool:
        """True if the class exists and is verified (200), False on 404."""
        url = self._url("classes", class_hash)
        resp = self._get(url)
        if resp.status_code == 200:
            return True
        if resp.status_code == 404:
            return False
        raise RequestFailure(url, resp.status_code, resp.text)

    @staticmethod
    def _json(url: str, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            logger.error("Non-JSON response from %s: %s", url, resp.text)
            raise RequestFailure(
                url, resp.status_code, f"Failed to parse JSON response: {e}"
            ) from e


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except (json.JSONDecodeError, ValueError):
        return resp.text
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return resp.text
