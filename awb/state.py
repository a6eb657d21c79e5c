"""AWB State — conversation, critique and checkpoint records, plus the loop state passed through the graph."""

from dataclasses import dataclass, field
from typing import Literal, TypedDict

Role = Literal["user", "assistant"]
MessageType = Literal["clarify", "code"]
Severity = Literal["critical", "major", "minor"]
LoopMode = Literal["build", "refine"]
ReportStatus = Literal["passed", "unverified", "issues_remaining"]

# Only these severities drive further fix rounds; minors are informational
ACTIONABLE_SEVERITIES = frozenset({"critical", "major"})


class CritiqueIssue(TypedDict):
    category: str
    severity: Severity
    description: str
    fix: str


class CritiqueResult(TypedDict):
    passed: bool
    score: float  # 0 means the check was unavailable, not a real score.
    issues: list[CritiqueIssue]


def copy_issues(issues) -> list[CritiqueIssue]:
    """Shallow-copy each issue so stored verdicts never alias a caller's dicts."""
    return [dict(issue) if isinstance(issue, dict) else issue for issue in issues]


def actionable_issues(critique: CritiqueResult | None) -> list[CritiqueIssue]:
    """Return the critical and major issues of a critique, in order."""
    if not critique:
        return []
    return [
        issue for issue in critique.get("issues", [])
        if isinstance(issue, dict) and issue.get("severity") in ACTIONABLE_SEVERITIES
    ]


def is_unverified(critique: CritiqueResult | None) -> bool:
    """True when the critique is the 'check unavailable' sentinel."""
    return bool(critique) and critique.get("score") == 0


@dataclass
class ConversationMessage:
    role: Role
    content: str
    summary: str | None = None
    message_type: MessageType | None = None

    @property
    def is_code(self) -> bool:
        return self.role == "assistant" and self.message_type == "code"

    @property
    def is_clarify(self) -> bool:
        return self.role == "assistant" and self.message_type == "clarify"


@dataclass(frozen=True)
class IterationCheckpoint:
    code: str
    iteration: int
    score: float
    passed: bool
    issues: tuple
    label: str

    @property
    def critique(self) -> CritiqueResult:
        """Rebuild the critique verdict stored with this snapshot."""
        return {"passed": self.passed, "score": self.score, "issues": copy_issues(self.issues)}


@dataclass
class RunReport:
    """Outcome of one completed build, refine or extra-fix run."""

    status: ReportStatus
    score: float
    iterations: int
    remaining: list[CritiqueIssue] = field(default_factory=list)

    @classmethod
    def from_critique(cls, critique: CritiqueResult | None, iterations: int) -> "RunReport":
        if critique is None or is_unverified(critique):
            return cls(status="unverified", score=0, iterations=iterations)
        remaining = actionable_issues(critique)
        if critique.get("passed") or not remaining:
            return cls(status="passed", score=critique.get("score", 0), iterations=iterations)
        return cls(
            status="issues_remaining",
            score=critique.get("score", 0),
            iterations=iterations,
            remaining=remaining,
        )

    @property
    def has_remaining_issues(self) -> bool:
        return self.status == "issues_remaining"

    def summary(self) -> str:
        rounds = f"{self.iterations} round{'s' if self.iterations != 1 else ''}"
        if self.status == "unverified":
            return f"Built without verification after {rounds} (QA check unavailable)."
        if self.status == "passed":
            return f"Passed QA with score {self.score:g}/10 after {rounds}."
        count = len(self.remaining)
        return (
            f"{count} issue{'s remain' if count != 1 else ' remains'} after {rounds} "
            f"(score {self.score:g}/10)."
        )


class LoopState(TypedDict):
    prompt: str  # Effective prompt for this run. Immutable after init.
    mode: LoopMode
    code: str  # Latest extracted full document.
    iteration: int  # Current round, 1-based.
    max_iterations: int
    critique: CritiqueResult | None
    label: str  # Label of the last recorded checkpoint.
