"""Shared parsing and HTTP retry utilities for the remote endpoints."""

import logging

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from awb.config import get_config

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
TRANSIENT_STATUS_CODES = (429, 500, 502, 503)


def parse_sse_data(line: str) -> str | None:
    """Return the payload of an SSE 'data:' line, or None for any other line."""
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None
    return stripped[len("data:"):].lstrip()


def summarize(text: str, limit: int = 100) -> str | None:
    """Short transcript label for long text. None when the text already fits."""
    if len(text) <= limit:
        return None
    return text[:limit].rstrip() + "..."


def is_transient(exc: BaseException) -> bool:
    """Return True if the exception is a transient HTTP/network error worth retrying."""
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.ConnectError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    # GenerationError carries the status of a rejected stream
    return getattr(exc, "status_code", None) in TRANSIENT_STATUS_CODES


def _log_retry(state) -> None:
    logger.warning(
        "Transient error: %r. Retrying in %.0fs (attempt %d)...",
        state.outcome.exception(),
        state.next_action.sleep,
        state.attempt_number,
    )


def retrying(max_retries: int | None = None) -> AsyncRetrying:
    """Build an async retry controller with exponential backoff on transient errors.

    Retries on HTTP 429/500/502/503, connection errors, and timeouts.
    Non-transient errors are raised immediately.
    """
    config = get_config()
    retries = config.get("http_max_retries", 2) if max_retries is None else max_retries

    return AsyncRetrying(
        stop=stop_after_attempt(retries + 1),  # +1 because first attempt counts
        wait=wait_exponential(multiplier=1, min=2, max=16),
        retry=retry_if_exception(is_transient),
        reraise=True,
        before_sleep=_log_retry,
    )
