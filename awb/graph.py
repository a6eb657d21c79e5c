"""LangGraph StateGraph definition for the generate -> critique -> fix loop."""

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from awb.agents.context import RunContext, run_context
from awb.agents.critic import critic_node
from awb.agents.generator import fixer_node, generator_node
from awb.state import CritiqueResult, LoopMode, LoopState, actionable_issues, is_unverified


def round_label(mode: LoopMode, iteration: int) -> str:
    """Human-readable checkpoint label for a round of a build or refinement."""
    if mode == "refine":
        return "Refinement" if iteration <= 1 else f"Refinement fix {iteration - 1}"
    return "Initial build" if iteration <= 1 else f"Fix {iteration - 1}"


def should_stop(critique: CritiqueResult | None, iteration: int, max_iterations: int) -> bool:
    """Stopping rule shared by the build and refine loops.

    Stop when the critique passed, the check was unavailable (score 0),
    the round budget is spent, or no critical/major issues remain.
    """
    if critique is None or is_unverified(critique):
        return True
    if critique.get("passed"):
        return True
    if iteration >= max_iterations:
        return True
    return not actionable_issues(critique)


def _route_after_critique(state: LoopState) -> str:
    """Conditional edge: finish, or go around for another fix round."""
    if should_stop(state["critique"], state["iteration"], state["max_iterations"]):
        return "end"
    return "fix"


async def _record_round(state: LoopState, config: RunnableConfig) -> dict:
    """Hand the finished round to the builder, which commits code and appends a checkpoint."""
    label = round_label(state["mode"], state["iteration"])
    run_context(config).end_round(state["code"], state["iteration"], state["critique"], label)
    return {"label": label}


async def _increment_iteration(state: LoopState) -> dict:
    """Passthrough node that bumps the iteration counter before a fix round."""
    return {"iteration": state["iteration"] + 1}


# --- Build the graph ---

workflow = StateGraph(LoopState)

workflow.add_node("generate", generator_node)
workflow.add_node("review", critic_node)
workflow.add_node("record", _record_round)
workflow.add_node("increment", _increment_iteration)
workflow.add_node("fix", fixer_node)

workflow.set_entry_point("generate")

workflow.add_edge("generate", "review")
workflow.add_edge("review", "record")

workflow.add_conditional_edges(
    "record",
    _route_after_critique,
    {
        "end": END,
        "fix": "increment",
    },
)

workflow.add_edge("increment", "fix")
workflow.add_edge("fix", "review")

graph = workflow.compile()


async def run_loop(
    ctx: RunContext,
    prompt: str,
    mode: LoopMode,
    max_iterations: int,
    code: str = "",
) -> LoopState:
    """Run one bounded build or refine loop and return the final loop state."""
    state: LoopState = {
        "prompt": prompt,
        "mode": mode,
        "code": code,
        "iteration": 1,
        "max_iterations": max_iterations,
        "critique": None,
        "label": "",
    }
    # generate/review/record plus increment/fix/review/record per extra round
    recursion_limit = 4 * max_iterations + 10
    return await graph.ainvoke(state, config=ctx.as_config(recursion_limit))
