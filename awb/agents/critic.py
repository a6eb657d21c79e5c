"""Critic Agent — grades the current round's code through the critique endpoint."""

from langchain_core.runnables import RunnableConfig

from awb.agents.context import run_context
from awb.clients.critique import critique
from awb.state import LoopState


async def critic_node(state: LoopState, config: RunnableConfig) -> dict:
    """Critic node for the LangGraph StateGraph.

    The critique client fails open, so this node only raises when the run
    is cancelled.
    """
    ctx = run_context(config)
    ctx.cancel_token.raise_if_cancelled()
    result = await critique(ctx.client, state["code"], state["prompt"])
    return {"critique": result}
