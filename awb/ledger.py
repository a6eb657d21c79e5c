"""Checkpoint ledger — append-only history of generated snapshots and their verdicts."""

from awb.state import CritiqueResult, IterationCheckpoint, copy_issues


class CheckpointLedger:
    """Ordered, append-only list of IterationCheckpoints.

    active_index is None while the live (latest) state is shown, or the
    index of the checkpoint last restored. Restoring never truncates.
    """

    def __init__(self):
        self._checkpoints: list[IterationCheckpoint] = []
        self.active_index: int | None = None

    def append(
        self,
        code: str,
        iteration: int,
        critique: CritiqueResult | None,
        label: str,
    ) -> IterationCheckpoint:
        critique = critique or {}
        checkpoint = IterationCheckpoint(
            code=code,
            iteration=iteration,
            score=critique.get("score", 0),
            passed=bool(critique.get("passed", False)),
            issues=tuple(copy_issues(critique.get("issues", []))),
            label=label,
        )
        self._checkpoints.append(checkpoint)
        self.active_index = None
        return checkpoint

    def restore(self, index: int) -> IterationCheckpoint | None:
        """Mark checkpoint index as active and return it. Out of range is a no-op."""
        if not isinstance(index, int) or not 0 <= index < len(self._checkpoints):
            return None
        self.active_index = index
        return self._checkpoints[index]

    def reset(self) -> None:
        self._checkpoints.clear()
        self.active_index = None

    @property
    def checkpoints(self) -> tuple[IterationCheckpoint, ...]:
        return tuple(self._checkpoints)

    @property
    def latest(self) -> IterationCheckpoint | None:
        return self._checkpoints[-1] if self._checkpoints else None

    def __len__(self) -> int:
        return len(self._checkpoints)

    def __getitem__(self, index: int) -> IterationCheckpoint:
        return self._checkpoints[index]

    def __iter__(self):
        return iter(self._checkpoints)
