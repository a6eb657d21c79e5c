"""Output Formatter — writes a finished widget to disk, with QA notes when issues remain."""

import re
from pathlib import Path

from awb.config import get_config
from awb.state import RunReport

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Kebab-case file stem for a widget title."""
    slug = _SLUG_STRIP_RE.sub("-", title.lower()).strip("-")
    return slug or "widget"


def _output_dir() -> Path:
    configured = Path(get_config().get("output_dir", "./output"))
    if configured.is_absolute():
        return configured
    return Path(__file__).resolve().parent.parent.parent / configured


def _render_notes(title: str, report: RunReport) -> str:
    lines = [f"# {title} — QA Notes", "", report.summary(), ""]
    lines.append("## Unresolved Issues")
    lines.append("")
    for i, issue in enumerate(report.remaining, 1):
        severity = issue.get("severity", "unknown")
        category = issue.get("category", "general")
        lines.append(f"{i}. **[{severity}/{category}]** {issue.get('description', '')}")
        if issue.get("fix"):
            lines.append(f"   - Suggested fix: {issue['fix']}")
    lines.append("")
    return "\n".join(lines)


def write_widget(code: str, title: str, report: RunReport | None = None) -> Path:
    """Write the widget document to the configured output directory.

    The filename is derived from the title; an existing file is never
    overwritten (" (2)", " (3)", ... is appended instead). When the report
    still lists critical/major issues, a `<name>.notes.md` file with those
    issues is written next to it.

    Returns the Path to the written HTML file.
    """
    if not code.strip():
        raise ValueError("No code to add")

    output_dir = _output_dir()
    output_dir.mkdir(parents=True, exist_ok=True)

    stem = slugify(title)
    output_path = output_dir / f"{stem}.html"
    counter = 1
    while output_path.exists():
        counter += 1
        output_path = output_dir / f"{stem} ({counter}).html"

    output_path.write_text(code, encoding="utf-8")

    if report is not None and report.has_remaining_issues:
        notes_path = output_path.with_suffix(".notes.md")
        notes_path.write_text(_render_notes(title, report), encoding="utf-8")

    return output_path
