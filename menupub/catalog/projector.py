"""Merge the staging ledger over the snapshot for display."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .ledger import StagingLedger
from .models import ChangeKind, ProjectedRow, RowStatus
from .snapshot import CatalogSnapshot

_STATUS_BY_KIND = {
    ChangeKind.NEW: RowStatus.NEW,
    ChangeKind.MODIFIED: RowStatus.MODIFIED,
    ChangeKind.DELETED: RowStatus.PENDING_DELETE,
}


def project(snapshot: CatalogSnapshot, ledger: StagingLedger) -> list[ProjectedRow]:
    """Return the rows the owner sees: pending work first, newest change first."""
    pending = [
        ProjectedRow(id=change.id, payload=change.payload, status=_STATUS_BY_KIND[change.kind])
        for change in reversed(ledger.entries())
    ]
    published = [
        ProjectedRow(id=item_id, payload=item, status=RowStatus.PUBLISHED)
        for item_id, item in snapshot.items.items()
        if item_id not in ledger
    ]
    return pending + published


@dataclass(slots=True, frozen=True)
class ProjectionSummary:
    published: int = 0
    new: int = 0
    modified: int = 0
    pending_delete: int = 0

    @property
    def pending(self) -> int:
        return self.new + self.modified + self.pending_delete


def summarize(rows: Iterable[ProjectedRow]) -> ProjectionSummary:
    counts = {status: 0 for status in RowStatus}
    for row in rows:
        counts[row.status] += 1
    return ProjectionSummary(
        published=counts[RowStatus.PUBLISHED],
        new=counts[RowStatus.NEW],
        modified=counts[RowStatus.MODIFIED],
        pending_delete=counts[RowStatus.PENDING_DELETE],
    )


def search(rows: Sequence[ProjectedRow], query: str) -> list[ProjectedRow]:
    """Case-insensitive substring search over the fields owners usually look for."""
    needle = query.strip().lower()
    if not needle:
        return list(rows)

    def haystack(row: ProjectedRow) -> Iterable[str]:
        item = row.payload
        return (
            item.name,
            item.section,
            str(item.price),
            item.ingredients,
            item.diet_type or "",
        )

    return [row for row in rows if any(needle in value.lower() for value in haystack(row))]


__all__ = ["ProjectionSummary", "project", "search", "summarize"]
