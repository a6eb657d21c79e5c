"""Streaming client for the widget generation endpoint.

The endpoint answers with newline-delimited Server-Sent-Events frames:

    data: {"content": "<div"}
    data: {"content": ">..."}
    data: [DONE]

A frame may carry an "error" field instead, which aborts the stream.
"""

import asyncio
import json
import logging
from typing import Callable

import httpx

from awb.config import get_config
from awb.utils.parsing import DONE_SENTINEL, parse_sse_data, retrying

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Failed to generate widget"

ProgressCallback = Callable[[str], None]


class GenerationError(Exception):
    """Transport or stream failure of a generation (or fix) request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GenerationAborted(Exception):
    """The request was stopped by its cancel token. Not an error for the user."""

    def __init__(self, message: str = "Generation cancelled"):
        super().__init__(message)


class CancelToken:
    """Cooperative cancellation flag handed to every request of one run."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationAborted()


def _error_message(body: bytes) -> str:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return DEFAULT_ERROR
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return DEFAULT_ERROR


async def _open_stream(client: httpx.AsyncClient, body: dict) -> httpx.Response:
    """Send the request and return the response with its body still unread."""
    path = get_config().get("generate_path", "/api/ai/generate-widget")

    async for attempt in retrying():
        with attempt:
            request = client.build_request("POST", path, json=body)
            response = await client.send(request, stream=True)
            if response.is_success:
                return response
            try:
                error_body = await response.aread()
            finally:
                await response.aclose()
            raise GenerationError(_error_message(error_body), status_code=response.status_code)


async def _read_frames(
    response: httpx.Response,
    cancel_token: CancelToken,
    on_progress: ProgressCallback | None,
) -> tuple[str, int]:
    text = ""
    frames = 0
    async for line in response.aiter_lines():
        cancel_token.raise_if_cancelled()
        data = parse_sse_data(line)
        if data is None:
            continue
        frames += 1
        if data == DONE_SENTINEL:
            continue
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping undecodable stream frame: %.80s", data)
            continue
        if not isinstance(payload, dict):
            continue
        if payload.get("error"):
            raise GenerationError(str(payload["error"]))
        content = payload.get("content")
        if content:
            text += content
            if on_progress is not None:
                on_progress(text)
    return text, frames


async def stream_generate(
    client: httpx.AsyncClient,
    body: dict,
    cancel_token: CancelToken,
    on_progress: ProgressCallback | None = None,
) -> str:
    """Run one generation request and return the accumulated text.

    on_progress receives the cumulative text after every content frame.

    Raises GenerationError on network failure, non-OK status, an error
    frame, or a stream without frames. Raises GenerationAborted when the
    cancel token fires, including when the surrounding task is cancelled
    on the token's behalf.
    """
    cancel_token.raise_if_cancelled()
    try:
        response = await _open_stream(client, body)
        try:
            text, frames = await _read_frames(response, cancel_token, on_progress)
        finally:
            await response.aclose()
    except asyncio.CancelledError:
        if cancel_token.cancelled:
            raise GenerationAborted() from None
        raise
    except httpx.HTTPError as exc:
        raise GenerationError(str(exc) or "Network error while generating widget") from exc

    if frames == 0:
        raise GenerationError("Generation service returned an empty stream.")
    logger.debug("Stream finished: %d frames, %d chars", frames, len(text))
    return text
