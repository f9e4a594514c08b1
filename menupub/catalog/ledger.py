"""Staging ledger: the pending, not-yet-published edits of one editor.

The ledger is an immutable value. Every operation returns a new ledger and
leaves the receiver untouched, so callers can keep the previous value around
(for example to retry a failed publish) and tests can compare states directly.
Operations that must validate ids against the published catalog take the
current :class:`~menupub.catalog.snapshot.CatalogSnapshot` explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Sequence

from ..core.errors import UnknownItemError
from .models import (
    CatalogItem,
    ChangeKind,
    LocalId,
    LocalMediaRef,
    PendingChange,
    is_local_id,
    mint_local_id,
)
from .snapshot import CatalogSnapshot


@dataclass(slots=True, frozen=True)
class StagingLedger:
    """Mapping from item identity to exactly one :class:`PendingChange`."""

    _entries: Mapping[str, PendingChange] = field(default_factory=dict)
    _clock: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "_entries", MappingProxyType(dict(self._entries)))

    @classmethod
    def from_entries(cls, entries: Iterable[PendingChange]) -> "StagingLedger":
        ordered = sorted(entries, key=lambda change: change.sequence)
        clock = max((change.sequence for change in ordered), default=0)
        return cls({change.id: change for change in ordered}, clock)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._entries

    def __iter__(self) -> Iterator[PendingChange]:
        return iter(self.entries())

    def __bool__(self) -> bool:
        return bool(self._entries)

    def get(self, item_id: str) -> PendingChange | None:
        return self._entries.get(item_id)

    def entries(self) -> tuple[PendingChange, ...]:
        """Return all pending changes, oldest change first."""
        return tuple(sorted(self._entries.values(), key=lambda change: change.sequence))

    def stage_create(
        self,
        payload: CatalogItem,
        media: Sequence[LocalMediaRef] = (),
    ) -> tuple["StagingLedger", LocalId]:
        local_id = mint_local_id()
        change = PendingChange(
            id=local_id,
            kind=ChangeKind.NEW,
            payload=payload,
            unresolved_media=tuple(media),
        )
        return self._put(change), local_id

    def stage_update(
        self,
        snapshot: CatalogSnapshot,
        item_id: str,
        payload: CatalogItem,
        media: Sequence[LocalMediaRef] | None = None,
    ) -> "StagingLedger":
        """Stage new content for ``item_id``, keeping the kind of an existing entry.

        ``media=None`` keeps whatever unresolved media the entry already has.
        """
        existing = self._entries.get(item_id)
        if existing is None:
            if is_local_id(item_id) or item_id not in snapshot:
                raise UnknownItemError(item_id, operation="stage_update")
            change = PendingChange(
                id=item_id,
                kind=ChangeKind.MODIFIED,
                payload=payload,
                unresolved_media=tuple(media or ()),
            )
            return self._put(change)

        unresolved = existing.unresolved_media if media is None else tuple(media)
        prior_kind = existing.prior_kind
        if existing.kind is ChangeKind.DELETED:
            # The edited content now differs from the snapshot; undo must keep it.
            prior_kind = ChangeKind.MODIFIED
        return self._put(
            replace(
                existing,
                payload=payload,
                unresolved_media=unresolved,
                prior_kind=prior_kind,
            )
        )

    def stage_delete(self, snapshot: CatalogSnapshot, item_id: str) -> "StagingLedger":
        existing = self._entries.get(item_id)
        if existing is not None and existing.kind is ChangeKind.NEW:
            return self._drop(item_id)
        if existing is not None and existing.kind is ChangeKind.DELETED:
            return self
        if existing is not None:
            return self._put(
                replace(existing, kind=ChangeKind.DELETED, prior_kind=existing.kind)
            )

        published = None if is_local_id(item_id) else snapshot.get(item_id)
        if published is None:
            raise UnknownItemError(item_id, operation="stage_delete")
        return self._put(PendingChange(id=item_id, kind=ChangeKind.DELETED, payload=published))

    def undo_delete(self, item_id: str) -> "StagingLedger":
        existing = self._entries.get(item_id)
        if existing is None or existing.kind is not ChangeKind.DELETED:
            raise UnknownItemError(item_id, operation="undo_delete")
        if existing.prior_kind is ChangeKind.MODIFIED:
            return self._put(replace(existing, kind=ChangeKind.MODIFIED, prior_kind=None))
        return self._drop(item_id)

    def clear(self) -> "StagingLedger":
        return StagingLedger({}, self._clock)

    def media_refs(self) -> list[LocalMediaRef]:
        return [ref for change in self.entries() for ref in change.unresolved_media]

    def _put(self, change: PendingChange) -> "StagingLedger":
        clock = self._clock + 1
        entries = dict(self._entries)
        entries[change.id] = replace(change, sequence=clock)
        return StagingLedger(entries, clock)

    def _drop(self, item_id: str) -> "StagingLedger":
        entries = dict(self._entries)
        del entries[item_id]
        return StagingLedger(entries, self._clock + 1)


def released_media(before: StagingLedger, after: StagingLedger) -> list[LocalMediaRef]:
    """Return media refs held by ``before`` that are no longer held by ``after``."""
    kept = {id(ref) for ref in after.media_refs()}
    return [ref for ref in before.media_refs() if id(ref) not in kept]


__all__ = ["StagingLedger", "released_media"]
