"""Debounced preview rendering for streamed widget code."""

import asyncio
from typing import Callable


class PreviewDebouncer:
    """Coalesces streamed updates into at most one render per delay window.

    schedule() keeps only the newest text and renders it when the window
    closes. flush() renders immediately and drops anything pending, so the
    preview always ends on the committed code.
    """

    def __init__(self, render: Callable[[str], None], delay: float = 0.8):
        self._render = render
        self.delay = delay
        self._pending: str | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, text: str) -> None:
        self._pending = text
        if self._handle is None:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        text, self._pending = self._pending, None
        if text is not None:
            self._render(text)

    def flush(self, text: str) -> None:
        self.cancel()
        self._render(text)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
