"""Builder phases and the single transition function that moves between them."""

from enum import Enum


class Phase(str, Enum):
    IDLE = "idle"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    BUILDING = "building"
    ITERATING_QA = "iterating_qa"
    REFINING = "refining"
    CANCELLED = "cancelled"
    FAILED = "failed"


class InvalidTransition(Exception):
    """Raised when an event is not allowed in the current phase."""

    def __init__(self, phase: Phase, event: str):
        super().__init__(f"Event '{event}' is not allowed in phase '{phase.value}'.")
        self.phase = phase
        self.event = event


# Phases from which a new run may start
_RESTING = {
    "clarify": Phase.AWAITING_CLARIFICATION,
    "build": Phase.BUILDING,
    "refine": Phase.REFINING,
    "extra_fix": Phase.ITERATING_QA,
    "reset": Phase.IDLE,
}

# Phases with a pipeline in flight
_RUNNING = {
    "complete": Phase.IDLE,
    "cancel": Phase.CANCELLED,
    "fail": Phase.FAILED,
    "reset": Phase.IDLE,
}

TRANSITIONS: dict[Phase, dict[str, Phase]] = {
    Phase.IDLE: {**_RESTING},
    Phase.CANCELLED: {**_RESTING},
    Phase.FAILED: {**_RESTING},
    # The clarify request streams while in this phase; the reply starts a build.
    Phase.AWAITING_CLARIFICATION: {
        "build": Phase.BUILDING,
        "refine": Phase.REFINING,
        "cancel": Phase.CANCELLED,
        "fail": Phase.FAILED,
        "reset": Phase.IDLE,
    },
    Phase.BUILDING: {**_RUNNING, "iterate": Phase.ITERATING_QA},
    Phase.REFINING: {**_RUNNING, "iterate": Phase.ITERATING_QA},
    Phase.ITERATING_QA: {**_RUNNING, "iterate": Phase.ITERATING_QA},
}


def transition(phase: Phase, event: str) -> Phase:
    """Return the phase reached by applying event to phase.

    Raises InvalidTransition for events the phase does not accept.
    """
    try:
        return TRANSITIONS[phase][event]
    except KeyError:
        raise InvalidTransition(phase, event) from None
