"""Code extraction — turns raw model output into a single renderable HTML document."""

import re

# Blocks shorter than this are treated as noise (inline snippets, stray fences)
MIN_BLOCK_CHARS = 30

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?(.*?)```", re.DOTALL)
_FENCE_MARK_RE = re.compile(r"```[\w-]*")
_DOC_MARKER_RE = re.compile(r"<!doctype|<html|<body", re.IGNORECASE)
_FRAGMENT_RE = re.compile(r"<(?:div|style|section|main)\b", re.IGNORECASE)
# Searched in order, so a real doctype wins over an earlier "<body" in prose
_DOC_START_RES = (
    re.compile(r"<!doctype", re.IGNORECASE),
    re.compile(r"<html", re.IGNORECASE),
    re.compile(r"<body", re.IGNORECASE),
)
_FULL_DOC_RE = re.compile(r"<!doctype|<html", re.IGNORECASE)
_HTML_CLOSE_RE = re.compile(r"</html>", re.IGNORECASE)
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)

_SHELL_HEAD = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    * { box-sizing: border-box; }
    body { margin: 0; padding: 16px; font-family: system-ui, -apple-system, sans-serif; background: transparent; }
  </style>
"""

_SHELL_TAIL = """
</body>
</html>"""


def document_shell(body: str, head_extra: str = "") -> str:
    """Return a minimal full document around body, with optional extra head markup."""
    return _SHELL_HEAD + head_extra + "</head>\n<body>\n" + body + _SHELL_TAIL


def _best_fenced_block(text: str) -> str | None:
    """Pick the fenced block most likely to hold the widget.

    Full documents beat fragments; ties go to the longest block.
    """
    candidates = [block.strip() for block in _FENCE_RE.findall(text)]
    candidates = [block for block in candidates if len(block) >= MIN_BLOCK_CHARS]
    if not candidates:
        return None
    return max(
        candidates,
        key=lambda block: (_DOC_MARKER_RE.search(block) is not None, len(block)),
    )


def _strip_fence_marks(text: str) -> str:
    # Removal can splice backticks into a new fence, so repeat until none are left
    while "```" in text:
        text = _FENCE_MARK_RE.sub("", text)
    return text


def _find_start(text: str, patterns) -> int | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.start()
    return None


def extract_code(raw: str) -> str:
    """Extract the HTML document from raw model output.

    Prefers a fenced block, otherwise the whole reply. Prose before the
    document start is cut, trying <!doctype, then <html, then <body, and
    outside a fenced block falling back to the first fragment tag.
    Anything after the last closing </html> is dropped. Returns an empty string if nothing survives.
    """
    if not isinstance(raw, str) or not raw.strip():
        return ""

    block = _best_fenced_block(raw)
    if block is not None:
        code = _strip_fence_marks(block)
        start = _find_start(code, _DOC_START_RES)
    else:
        code = _strip_fence_marks(raw)
        start = _find_start(code, _DOC_START_RES + (_FRAGMENT_RE,))
    if start is not None:
        code = code[start:]

    last_close = None
    for last_close in _HTML_CLOSE_RE.finditer(code):
        pass
    if last_close is not None:
        code = code[:last_close.end()]

    return code.strip()


def ensure_full_document(code: str) -> str:
    """Wrap a fragment in a minimal document shell; full documents pass through."""
    if not code or not code.strip():
        return ""
    if _FULL_DOC_RE.match(code.strip()):
        return code
    return document_shell(code)


def infer_title(code: str, prompt: str, max_chars: int = 50) -> str:
    """Derive a widget title from the document's <title>, else from the prompt."""
    match = _TITLE_RE.search(code or "")
    if match:
        title = match.group(1).strip()
        if title and len(title) < max_chars:
            return title

    words = " ".join(prompt.split()[:5])
    return words[:1].upper() + words[1:]
