"""Turn pending changes into store operations and bounded chunks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

from ..catalog.models import ChangeKind, PendingChange
from ..platforms.base import DeleteOp, InsertOp, Op, UpdateOp


@dataclass(slots=True, frozen=True)
class PlannedOp:
    """A store operation together with the ledger entry it came from."""

    change_id: str
    op: Op

    @property
    def kind(self) -> ChangeKind:
        if isinstance(self.op, InsertOp):
            return ChangeKind.NEW
        if isinstance(self.op, UpdateOp):
            return ChangeKind.MODIFIED
        return ChangeKind.DELETED


def to_op(change: PendingChange) -> PlannedOp:
    if change.kind is ChangeKind.NEW:
        op: Op = InsertOp(payload=change.payload, source_id=change.id)
    elif change.kind is ChangeKind.MODIFIED:
        op = UpdateOp(item_id=change.id, payload=change.payload)
    else:
        op = DeleteOp(item_id=change.id)
    return PlannedOp(change_id=change.id, op=op)


def plan(changes: Sequence[PendingChange]) -> list[PlannedOp]:
    """Map changes to operations, keeping ledger order."""
    return [to_op(change) for change in changes]


def chunked(planned: Sequence[PlannedOp], size: int) -> Iterator[list[PlannedOp]]:
    """Yield consecutive chunks of at most ``size`` operations."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    for start in range(0, len(planned), size):
        yield list(planned[start : start + size])


__all__ = ["PlannedOp", "chunked", "plan", "to_op"]
