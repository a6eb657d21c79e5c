"""Per-run collaborators handed to graph nodes through the LangGraph config."""

from dataclasses import dataclass, field
from typing import Callable

import httpx
from langchain_core.runnables import RunnableConfig

from awb.clients.streaming import CancelToken, ProgressCallback
from awb.state import CritiqueResult

CONFIG_KEY = "awb_run"

RoundStartCallback = Callable[[int], None]
RoundEndCallback = Callable[[str, int, CritiqueResult | None, str], None]


@dataclass
class RunContext:
    client: httpx.AsyncClient
    cancel_token: CancelToken
    original_prompt: str = ""
    history: list[dict] = field(default_factory=list)
    on_progress: ProgressCallback | None = None
    on_round_start: RoundStartCallback | None = None
    on_round_end: RoundEndCallback | None = None

    def begin_round(self, iteration: int) -> None:
        self.cancel_token.raise_if_cancelled()
        if self.on_round_start is not None:
            self.on_round_start(iteration)

    def end_round(self, code: str, iteration: int, critique: CritiqueResult | None, label: str) -> None:
        self.cancel_token.raise_if_cancelled()
        if self.on_round_end is not None:
            self.on_round_end(code, iteration, critique, label)

    def as_config(self, recursion_limit: int) -> RunnableConfig:
        return {"configurable": {CONFIG_KEY: self}, "recursion_limit": recursion_limit}


def run_context(config: RunnableConfig) -> RunContext:
    """Fetch the RunContext a node was invoked with."""
    return config["configurable"][CONFIG_KEY]
