"""Preview sandbox — error bridge injection and the parent-side error log.

Generated widgets run inside an isolated frame. The bridge script reports
uncaught errors to the embedding page as

    {"type": "iframe-error", "source": "ai-widget-preview", "message": "..."}

and SandboxErrorLog is the receiving end of that one-way channel.
"""

import re
from collections import deque

from awb.utils.extraction import document_shell

ERROR_MESSAGE_TYPE = "iframe-error"
ERROR_SOURCE = "ai-widget-preview"
MAX_VISIBLE_ERRORS = 5

_HEAD_OPEN_RE = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_BODY_OPEN_RE = re.compile(r"<body(?:\s[^>]*)?>", re.IGNORECASE)

ERROR_BRIDGE = """
<script>
(function () {
  function report(message) {
    try {
      window.parent.postMessage(
        { type: "%s", source: "%s", message: String(message) },
        "*"
      );
    } catch (e) {}
  }
  window.addEventListener("error", function (event) {
    report(event.message || "Script error");
  });
  window.addEventListener("unhandledrejection", function (event) {
    var reason = event.reason;
    report((reason && reason.message) || String(reason));
  });
})();
</script>
""" % (ERROR_MESSAGE_TYPE, ERROR_SOURCE)


def wrap_for_sandbox(code: str) -> str:
    """Inject the error bridge right after <head>, else after <body>.

    Fragments with neither tag get a full wrapper document carrying the
    bridge in its head.
    """
    if not code or not code.strip():
        return ""

    for pattern in (_HEAD_OPEN_RE, _BODY_OPEN_RE):
        match = pattern.search(code)
        if match:
            return code[:match.end()] + ERROR_BRIDGE + code[match.end():]

    return document_shell(code, head_extra=ERROR_BRIDGE)


def is_sandbox_error(payload) -> bool:
    """True if an inbound frame message is an error report from the preview."""
    return (
        isinstance(payload, dict)
        and payload.get("type") == ERROR_MESSAGE_TYPE
        and payload.get("source") == ERROR_SOURCE
        and isinstance(payload.get("message"), str)
    )


class SandboxErrorLog:
    """Deduplicated trailing window of runtime errors reported by the preview."""

    def __init__(self, limit: int = MAX_VISIBLE_ERRORS):
        self._errors: deque[str] = deque(maxlen=limit)

    def receive(self, payload) -> bool:
        """Record an inbound message. Returns True if it was accepted as new."""
        if not is_sandbox_error(payload):
            return False
        message = payload["message"]
        if message in self._errors:
            return False
        self._errors.append(message)
        return True

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    @property
    def latest(self) -> str | None:
        return self._errors[-1] if self._errors else None

    def clear(self) -> None:
        self._errors.clear()

    def __len__(self) -> int:
        return len(self._errors)
