"""Generator Agent — streams widget code from the generation endpoint.

Round 1 of a build asks for a fresh widget ("generate" mode); round 1 of a
refinement edits the existing one ("refine" mode, seeded with the
conversation). Every later round is a fix: the actionable critique issues
are sent back with the current code and the model must return the complete
corrected document.
"""

from langchain_core.runnables import RunnableConfig

from awb.agents.context import RunContext, run_context
from awb.clients.streaming import GenerationError, stream_generate
from awb.state import CritiqueIssue, LoopState, actionable_issues
from awb.utils.extraction import ensure_full_document, extract_code

FIX_INSTRUCTIONS = """\
Fix the following issues in the widget. Return the COMPLETE corrected HTML \
document (doctype, head, styles, body and scripts), not a diff or a fragment. \
Keep everything that already works.\
"""


def build_generation_request(
    prompt: str,
    mode: str,
    history: list[dict] | None = None,
    current_code: str | None = None,
    original_prompt: str | None = None,
) -> dict:
    """Request body for the generation endpoint. Optional fields are omitted when empty."""
    body = {
        "prompt": prompt,
        "mode": mode,
        "conversationHistory": list(history or []),
    }
    if current_code:
        body["currentCode"] = current_code
    if original_prompt:
        body["originalPrompt"] = original_prompt
    return body


def _build_fix_prompt(issues: list[CritiqueIssue], user_prompt: str) -> str:
    parts = [FIX_INSTRUCTIONS, f"\n## Original Request\n{user_prompt}", "\n## Issues"]
    for i, issue in enumerate(issues, 1):
        severity = issue.get("severity", "unknown")
        category = issue.get("category", "general")
        parts.append(f"{i}. [{severity}/{category}] {issue.get('description', '')}")
        if issue.get("fix"):
            parts.append(f"   Suggested fix: {issue['fix']}")
    return "\n".join(parts)


def finalize_code(raw: str) -> str:
    """Extract the document from model output. Raises GenerationError if nothing usable remains."""
    code = ensure_full_document(extract_code(raw))
    if not code:
        raise GenerationError("The model did not return any usable widget code.")
    return code


async def request_fix(ctx: RunContext, code: str, issues: list[CritiqueIssue], user_prompt: str) -> str:
    """Stream one fix round and return the corrected full document."""
    body = build_generation_request(
        _build_fix_prompt(issues, user_prompt),
        mode="refine",
        current_code=code,
        original_prompt=ctx.original_prompt or user_prompt,
    )
    raw = await stream_generate(ctx.client, body, ctx.cancel_token, on_progress=ctx.on_progress)
    return finalize_code(raw)


async def generator_node(state: LoopState, config: RunnableConfig) -> dict:
    """Generator node for the LangGraph StateGraph.

    Produces the first round of a build or refinement and returns the
    extracted document as the new code.
    """
    ctx = run_context(config)
    ctx.begin_round(state["iteration"])

    if state["mode"] == "refine":
        body = build_generation_request(
            state["prompt"],
            mode="refine",
            history=ctx.history,
            current_code=state["code"],
            original_prompt=ctx.original_prompt,
        )
    else:
        body = build_generation_request(state["prompt"], mode="generate")

    raw = await stream_generate(ctx.client, body, ctx.cancel_token, on_progress=ctx.on_progress)
    return {"code": finalize_code(raw)}


async def fixer_node(state: LoopState, config: RunnableConfig) -> dict:
    """Fix node: sends the actionable issues of the last critique back to the model."""
    ctx = run_context(config)
    ctx.begin_round(state["iteration"])

    issues = actionable_issues(state["critique"])
    code = await request_fix(ctx, state["code"], issues, state["prompt"])
    return {"code": code}
