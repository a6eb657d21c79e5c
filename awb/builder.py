"""Widget Builder — drives one AI widget session from prompt to verified code.

A session is a short conversation:

1. The first prompt may get clarifying questions back instead of code
   (clarify mode). The user's answer is folded into the original prompt.
2. With no code yet, a bounded build loop runs generate -> critique -> fix
   rounds until the critique passes, the round budget is spent, or no
   critical/major issues remain.
3. Later prompts run a shorter refine loop against the existing code,
   seeded with the conversation so far.

Every finished round is recorded in the checkpoint ledger. Only one
pipeline runs at a time; a new submission cancels the one in flight.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

import httpx

from awb.agents.context import RunContext
from awb.agents.generator import build_generation_request, request_fix
from awb.clients.critique import critique
from awb.clients.streaming import CancelToken, GenerationAborted, ProgressCallback, stream_generate
from awb.config import get_config
from awb.graph import run_loop
from awb.ledger import CheckpointLedger
from awb.phases import Phase, transition
from awb.preview import PreviewDebouncer
from awb.state import ConversationMessage, CritiqueResult, RunReport
from awb.utils.extraction import ensure_full_document, extract_code, infer_title
from awb.utils.parsing import summarize
from awb.utils.sandbox import SandboxErrorLog, wrap_for_sandbox
from awb.utils.validator import validate_prompt

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "AI Widget"
CANCELLED_NOTICE = "Generation cancelled"

# Fields a run may overwrite before it completes
_RUN_STATE_FIELDS = ("code", "critique", "last_report", "iteration", "extra_fixes", "_effective_prompt")

PROMPT_SUGGESTIONS = [
    "A motivational quote rotator with smooth fade animations",
    "A Pomodoro timer with a visual progress ring",
    "A goal progress tracker with animated bars",
    "A digital clock with date and weather-style theme",
    "A sticky note board with draggable colorful cards",
    "A mini habit streak counter with fire animations",
]


def needs_fresh_build(code: str) -> bool:
    """True when a submission must start a new build instead of refining.

    Decided on the live code buffer alone: a session whose code was cleared
    builds from scratch even if its transcript still holds code turns.
    """
    return not code or not code.strip()


def effective_prompt(original_prompt: str, reply: str, answering_clarification: bool) -> str:
    """Prompt sent for a build or refine run.

    A reply to clarifying questions is appended to the original request.
    """
    if answering_clarification and original_prompt:
        return f"{original_prompt}\n\nUser's choices: {reply}"
    return reply


@dataclass
class _Run:
    """One in-flight pipeline: its prompt, cancel token, the messages it added and the state it replaced."""

    prompt: str
    token: CancelToken = field(default_factory=CancelToken)
    messages: list[ConversationMessage] = field(default_factory=list)
    # Session fields as they were before the run, restored if it never completes
    snapshot: dict = field(default_factory=dict)


class WidgetBuilder:
    """Orchestrates clarify, build, refine and extra-fix runs for one session.

    Args:
        client: HTTP client for the generation and critique endpoints.
            One is created from config (and closed by aclose) if omitted.
        clarify_first: Ask clarifying questions before the first build.
            None uses the config default.
        on_progress: Called with the cumulative streamed text.
        on_preview: Called with a sandbox-ready document whenever the
            preview should re-render (debounced while streaming).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        clarify_first: bool | None = None,
        on_progress: ProgressCallback | None = None,
        on_preview: Callable[[str], None] | None = None,
    ):
        config = get_config()
        if client is None:
            client = httpx.AsyncClient(
                base_url=config["api_base_url"],
                timeout=config.get("request_timeout_seconds", 120),
            )
            self._owns_client = True
        else:
            self._owns_client = False
        self._client = client

        self.clarify_first = config.get("clarify_first", True) if clarify_first is None else clarify_first
        self._on_progress = on_progress
        self._on_preview = on_preview
        self.preview = PreviewDebouncer(
            self._render_preview, delay=config.get("preview_debounce_seconds", 0.8)
        )
        self.sandbox_errors = SandboxErrorLog()

        self._run: _Run | None = None
        self._task: asyncio.Task | None = None
        self._notice_handle: asyncio.TimerHandle | None = None

        self.phase = Phase.IDLE
        self._reset_session()

    def _reset_session(self) -> None:
        self.code = ""
        self.title = ""
        self.original_prompt = ""
        self.messages: list[ConversationMessage] = []
        self.ledger = CheckpointLedger()
        self.critique: CritiqueResult | None = None
        self.iteration = 0
        self.extra_fixes = 0
        self.last_report: RunReport | None = None
        self.error = ""
        self.retry_prompt = ""
        self.status = ""
        self.view = "code"
        self.streaming_text = ""
        self.preview_document = ""
        self._effective_prompt = ""
        self.sandbox_errors.clear()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def is_generating(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._run is not None
            and not self._run.token.cancelled
        )

    @property
    def awaiting_clarification(self) -> bool:
        """True while the newest message is an unanswered clarify turn."""
        return bool(self.messages) and self.messages[-1].is_clarify

    @property
    def extra_fixes_left(self) -> int:
        return max(0, get_config().get("max_extra_fixes", 2) - self.extra_fixes)

    @property
    def can_fix_remaining(self) -> bool:
        return (
            not self.is_generating
            and self.last_report is not None
            and self.last_report.has_remaining_issues
            and self.extra_fixes_left > 0
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def submit(self, user_prompt: str) -> bool:
        """Send a prompt: clarify, build or refine depending on the session.

        Returns True when the run completed, False when it was rejected,
        cancelled or failed (see `error` and `retry_prompt`).
        """
        try:
            prompt = validate_prompt(user_prompt)
        except ValueError:
            return False

        if self.is_generating:
            if self._run.prompt == prompt:
                logger.info("Ignoring duplicate submission while generating.")
                return False
            await self._supersede()

        config = get_config()
        first_message = not self.messages
        answering = self.awaiting_clarification
        fresh = needs_fresh_build(self.code)

        if first_message and fresh and self.clarify_first:
            event = "clarify"
        elif fresh:
            event = "build"
        else:
            event = "refine"
        self.phase = transition(self.phase, event)

        run = self._new_run(prompt)
        self._add_message(run, ConversationMessage(
            "user", prompt, summary=summarize(prompt, config.get("summary_max_chars", 100))
        ))
        self.error = ""
        if first_message:
            self.original_prompt = prompt
            if event != "refine":
                self.ledger.reset()

        if event == "clarify":
            return await self._launch(run, self._clarify(run))

        prompt_for_run = effective_prompt(self.original_prompt, prompt, answering)
        if event == "build":
            title_source = self.original_prompt if answering else prompt
            return await self._launch(run, self._build(run, prompt_for_run, title_source))
        return await self._launch(run, self._refine(run, prompt_for_run))

    async def retry(self) -> bool:
        """Resubmit the prompt of the last failed run."""
        if not self.retry_prompt or self.is_generating:
            return False
        return await self.submit(self.retry_prompt)

    async def fix_remaining_issues(self) -> RunReport | None:
        """Spend one extra fix round on the issues left by the last run.

        Returns the new report, or None when unavailable, cancelled or failed.
        """
        if not self.can_fix_remaining:
            return None
        self.phase = transition(self.phase, "extra_fix")
        run = self._new_run("")
        if await self._launch(run, self._extra_fix(run)):
            return self.last_report
        return None

    async def fix_runtime_error(self, message: str | None = None) -> bool:
        """Ask the model to fix a runtime error reported by the preview."""
        message = message or self.sandbox_errors.latest
        if not message:
            return False
        return await self.submit(f"Fix this runtime error in the widget: {message}")

    def abort(self, announce: bool = True) -> bool:
        """Cancel the in-flight run. Returns False if nothing was running."""
        if not self.is_generating:
            return False
        self._cancel_run(self._run)
        if announce:
            self._announce(CANCELLED_NOTICE)
        logger.info("Generation cancelled by user.")
        return True

    def start_over(self) -> None:
        """Drop the whole session and return to an empty, idle builder."""
        if self.is_generating:
            self.abort(announce=False)
        self.preview.cancel()
        self._cancel_notice()
        self._reset_session()
        self.phase = transition(self.phase, "reset")

    def restore_checkpoint(self, index: int) -> bool:
        """Make checkpoint index the live code. The ledger keeps every entry."""
        if self.is_generating:
            return False
        checkpoint = self.ledger.restore(index)
        if checkpoint is None:
            return False
        self.code = checkpoint.code
        self.critique = checkpoint.critique
        self.iteration = checkpoint.iteration
        self.last_report = RunReport.from_critique(self.critique, checkpoint.iteration)
        self.preview.flush(self.code)
        return True

    def set_code(self, code: str) -> bool:
        """Replace the live code with a manual edit."""
        if self.is_generating:
            return False
        self.code = code
        self.preview.flush(code)
        return True

    def set_title(self, title: str) -> None:
        self.title = title

    def toggle_view(self) -> str:
        self.view = "code" if self.view == "preview" else "preview"
        return self.view

    def receive_sandbox_message(self, payload) -> bool:
        """Feed a message posted by the preview frame into the error log."""
        return self.sandbox_errors.receive(payload)

    def finalize(self) -> tuple[str, str]:
        """Return (code, title) for adding the widget to the dashboard."""
        if not self.code.strip():
            raise ValueError("No code to add")
        return self.code, self.title.strip() or DEFAULT_TITLE

    async def aclose(self) -> None:
        """Cancel outstanding work and timers, and close an owned HTTP client."""
        task = self._task
        self.abort(announce=False)
        if task is not None:
            await asyncio.wait({task})
        self.preview.cancel()
        self._cancel_notice()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WidgetBuilder":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _launch(self, run: _Run, pipeline) -> bool:
        self._run = run
        task = asyncio.create_task(pipeline)
        self._task = task
        try:
            await task
        except (asyncio.CancelledError, GenerationAborted):
            if not run.token.cancelled:
                # Cancelled from outside (e.g. the caller's task): unwind like an abort.
                self._cancel_run(run)
                raise
            return False
        except Exception as exc:
            if run.token.cancelled:
                return False
            self._fail(run, exc)
            return False
        finally:
            if self._task is task:
                self._task = None
                self._run = None
                self.streaming_text = ""
        return True

    async def _supersede(self) -> None:
        task = self._task
        self.abort(announce=False)
        if task is not None:
            await asyncio.wait({task})

    def _new_run(self, prompt: str) -> _Run:
        return _Run(prompt=prompt, snapshot={name: getattr(self, name) for name in _RUN_STATE_FIELDS})

    def _rollback(self, run: _Run) -> None:
        """Undo an unfinished run: drop its messages and restore the state it replaced.

        Checkpoints of rounds it completed stay in the ledger and can be restored.
        """
        self._discard(run)
        for name, value in run.snapshot.items():
            setattr(self, name, value)
        self.preview.cancel()
        if self.code:
            self.preview.flush(self.code)

    def _cancel_run(self, run: _Run) -> None:
        run.token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._rollback(run)
        self.streaming_text = ""
        self.iteration = 0
        self.phase = transition(self.phase, "cancel")

    def _fail(self, run: _Run, exc: Exception) -> None:
        self._rollback(run)
        self.error = str(exc) or "Generation failed"
        self.retry_prompt = run.prompt
        self.phase = transition(self.phase, "fail")
        logger.error("Generation failed: %s", self.error)

    def _add_message(self, run: _Run, message: ConversationMessage) -> None:
        self.messages.append(message)
        run.messages.append(message)

    def _discard(self, run: _Run) -> None:
        """Remove every conversation entry the run added."""
        added = {id(message) for message in run.messages}
        self.messages = [message for message in self.messages if id(message) not in added]
        run.messages.clear()

    def _announce(self, text: str) -> None:
        self._cancel_notice()
        self.status = text
        delay = get_config().get("cancel_notice_seconds", 2.0)
        self._notice_handle = asyncio.get_running_loop().call_later(delay, self._clear_notice)

    def _clear_notice(self) -> None:
        self._notice_handle = None
        self.status = ""

    def _cancel_notice(self) -> None:
        if self._notice_handle is not None:
            self._notice_handle.cancel()
            self._notice_handle = None

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def _clarify(self, run: _Run) -> None:
        placeholder = ConversationMessage("assistant", "", message_type="clarify")
        self._add_message(run, placeholder)

        def on_progress(text: str) -> None:
            placeholder.content = text
            if self._on_progress is not None:
                self._on_progress(text)

        body = build_generation_request(run.prompt, mode="clarify")
        placeholder.content = await stream_generate(self._client, body, run.token, on_progress=on_progress)
        logger.info("Clarifying questions received (%d chars).", len(placeholder.content))

    async def _build(self, run: _Run, prompt: str, title_source: str) -> None:
        config = get_config()
        self._begin(prompt)
        final = await run_loop(
            self._context(run), prompt, "build", config.get("max_build_iterations", 5)
        )
        if not self.title:
            self.title = infer_title(self.code, title_source, config.get("title_max_chars", 50))
        self._complete(run, final["critique"], final["iteration"])

    async def _refine(self, run: _Run, prompt: str) -> None:
        config = get_config()
        self._begin(prompt)
        ctx = self._context(run, history=self._conversation_history(run))
        final = await run_loop(
            ctx, prompt, "refine", config.get("max_refine_iterations", 3), code=self.code
        )
        self._complete(run, final["critique"], final["iteration"])

    async def _extra_fix(self, run: _Run) -> None:
        prompt = self._effective_prompt or self.original_prompt
        issues = self.last_report.remaining
        iteration = self.last_report.iterations + 1
        ctx = self._context(run)

        ctx.begin_round(iteration)
        code = await request_fix(ctx, self.code, issues, prompt)
        result = await critique(self._client, code, prompt)
        ctx.end_round(code, iteration, result, f"Extra fix {self.extra_fixes + 1}")
        self.extra_fixes += 1

        report = RunReport.from_critique(result, iteration)
        self.last_report = report
        self._add_message(run, ConversationMessage(
            "assistant", self.code, summary=self._extra_fix_summary(report), message_type="code"
        ))
        self._finish()

    def _begin(self, prompt: str) -> None:
        self._effective_prompt = prompt
        self.extra_fixes = 0
        self.last_report = None
        self.iteration = 0

    def _complete(self, run: _Run, result: CritiqueResult | None, iterations: int) -> None:
        report = RunReport.from_critique(result, iterations)
        self.last_report = report
        summary = f"{self.title}: {report.summary()}" if self.title else report.summary()
        self._add_message(run, ConversationMessage(
            "assistant", self.code, summary=summary, message_type="code"
        ))
        logger.info("Run complete: %s", report.summary())
        self._finish()

    def _finish(self) -> None:
        self.view = "preview"
        self.error = ""
        self.retry_prompt = ""
        self.sandbox_errors.clear()
        self.phase = transition(self.phase, "complete")

    def _extra_fix_summary(self, report: RunReport) -> str:
        if not report.has_remaining_issues:
            return f"All remaining issues resolved. {report.summary()}"
        count = len(report.remaining)
        issues = "1 issue remains" if count == 1 else f"{count} issues remain"
        if self.extra_fixes_left > 0:
            return (
                f"{issues}. You can run another fix round "
                f"({self.extra_fixes_left} left)."
            )
        return f"{issues}. No extra fix rounds left."

    # ------------------------------------------------------------------
    # Graph callbacks
    # ------------------------------------------------------------------

    def _context(self, run: _Run, history: list[dict] | None = None) -> RunContext:
        return RunContext(
            client=self._client,
            cancel_token=run.token,
            original_prompt=self.original_prompt,
            history=history or [],
            on_progress=self._on_stream_progress,
            on_round_start=self._on_round_start,
            on_round_end=self._on_round_end,
        )

    def _conversation_history(self, run: _Run) -> list[dict]:
        """User turns plus one-line summaries of earlier code turns, excluding this run."""
        own = {id(message) for message in run.messages}
        history = []
        for message in self.messages:
            if id(message) in own:
                continue
            if message.role == "user":
                history.append({"role": "user", "content": message.content})
            elif message.is_code:
                history.append({"role": "assistant", "content": message.summary or "Generated the widget."})
        return history

    def _on_round_start(self, iteration: int) -> None:
        self.iteration = iteration
        if iteration > 1:
            self.phase = transition(self.phase, "iterate")

    def _on_stream_progress(self, text: str) -> None:
        self.streaming_text = text
        self.preview.schedule(text)
        if self._on_progress is not None:
            self._on_progress(text)

    def _on_round_end(self, code: str, iteration: int, result: CritiqueResult | None, label: str) -> None:
        self.code = code
        self.critique = result
        self.ledger.append(code, iteration, result, label)
        self.streaming_text = ""
        self.preview.flush(code)
        logger.info(
            "%s: score=%s passed=%s",
            label, (result or {}).get("score"), (result or {}).get("passed"),
        )

    def _render_preview(self, text: str) -> None:
        document = wrap_for_sandbox(ensure_full_document(extract_code(text)))
        if not document:
            return
        self.preview_document = document
        if self._on_preview is not None:
            self._on_preview(document)
