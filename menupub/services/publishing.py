"""Publish staged edits: resolve media, commit bounded batches, reconcile.

Cross-batch atomicity is NOT provided. Each chunk of at most
``max_batch_size`` operations is applied atomically by the store, but when
chunk *n* fails, chunks ``0..n-1`` stay applied. The result then reports
exactly what was committed, and the input ledger is returned unchanged. Some
of its entries are already live at that point, so the caller has to reload
the snapshot and re-stage whatever is still outstanding. Blindly retrying the
same ledger would insert the already-committed ``New`` items a second time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Sequence

from ..catalog.ledger import StagingLedger, released_media
from ..catalog.models import ChangeKind, ItemId, PendingChange
from ..catalog.snapshot import CatalogSnapshot, SnapshotLoader
from ..core.errors import (
    BatchCommitError,
    MediaResolutionError,
    MenuPubError,
    PublishCancelled,
    PublishError,
)
from ..platforms.base import DEFAULT_MAX_BATCH_SIZE, CatalogStore
from ..utils.logging import get_logger
from .batching import PlannedOp, chunked, plan
from .media import MediaResolver

LOGGER = get_logger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PublishStage(str, Enum):
    IDLE = "idle"
    RESOLVING_MEDIA = "resolving_media"
    COMMITTING = "committing"
    RECONCILING = "reconciling"
    FAILED = "failed"


@dataclass(slots=True)
class PublishResult:
    """Outcome of one publish run.

    ``failed_stage`` is ``None`` on success. ``ledger`` is the ledger the
    caller should keep: cleared after every operation was committed, the
    untouched input otherwise.
    """

    ledger: StagingLedger
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed_at: str | None = None
    failed_stage: PublishStage | None = None
    error: MenuPubError | None = None
    batches_committed: int = 0
    batches_total: int = 0
    assigned_ids: dict[str, ItemId] = field(default_factory=dict)
    snapshot: CatalogSnapshot | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def committed(self) -> int:
        return self.created + self.updated + self.deleted

    def as_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "created": self.created,
            "updated": self.updated,
            "deleted": self.deleted,
            "batches_committed": self.batches_committed,
            "batches_total": self.batches_total,
        }
        if self.failed_at is not None:
            data["failed_at"] = self.failed_at
        if self.failed_stage is not None:
            data["failed_stage"] = self.failed_stage.value
        if self.error is not None:
            data["error"] = str(self.error)
        if self.assigned_ids:
            data["assigned_ids"] = dict(self.assigned_ids)
        return data


class PublishOrchestrator:
    """Drains a staging ledger into the catalog store."""

    def __init__(
        self,
        store: CatalogStore,
        loader: SnapshotLoader,
        media: MediaResolver,
        *,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self._store = store
        self._loader = loader
        self._media = media
        self._max_batch_size = max_batch_size
        self._clock = clock
        self.stage = PublishStage.IDLE

    @property
    def tenant(self) -> str:
        return self._loader.tenant

    def publish(
        self,
        ledger: StagingLedger,
        *,
        cancel: threading.Event | None = None,
    ) -> PublishResult:
        """Publish every entry of ``ledger``.

        Owner confirmation is expected to have happened before this call.
        ``cancel`` is only consulted before each chunk commit.
        """
        if not ledger:
            return PublishResult(ledger=ledger)

        changes = ledger.entries()
        LOGGER.info(
            "Publish started",
            extra={
                "event": "publish.start",
                "tenant": self.tenant,
                "changes": len(changes),
                "max_batch_size": self._max_batch_size,
            },
        )

        self._enter(PublishStage.RESOLVING_MEDIA)
        try:
            resolved = self._media.resolve(changes)
        except MediaResolutionError as exc:
            return self._fail(
                PublishResult(ledger=ledger, failed_at=exc.item_id, error=exc),
                PublishStage.RESOLVING_MEDIA,
            )

        ready = [
            self._stamp(replace(change, payload=resolved.get(change.id, change.payload)))
            for change in changes
        ]
        planned = plan(ready)
        result = PublishResult(
            ledger=ledger,
            batches_total=-(-len(planned) // self._max_batch_size),
        )

        self._enter(PublishStage.COMMITTING)
        for index, chunk in enumerate(chunked(planned, self._max_batch_size)):
            if cancel is not None and cancel.is_set():
                result.failed_at = chunk[0].change_id
                result.error = PublishCancelled(
                    "Publish cancelled before batch commit",
                    item_id=chunk[0].change_id,
                    details={"batch": index},
                )
                return self._fail(result, PublishStage.COMMITTING)
            try:
                assigned = self._store.commit_batch(self.tenant, [entry.op for entry in chunk])
            except Exception as exc:
                failed_at = _failing_item(chunk, exc)
                error = BatchCommitError(
                    "Batch commit failed; earlier batches remain applied",
                    item_id=failed_at,
                    details={"batch": index, "operations": len(chunk), "reason": str(exc)},
                )
                error.__cause__ = exc
                result.failed_at = failed_at
                result.error = error
                return self._fail(result, PublishStage.COMMITTING)
            self._record(result, chunk, assigned)
            LOGGER.info(
                "Batch committed",
                extra={
                    "event": "publish.batch",
                    "tenant": self.tenant,
                    "batch": index,
                    "operations": len(chunk),
                },
            )

        self._enter(PublishStage.RECONCILING)
        # Every batch is already applied, so the ledger is cleared before the reload.
        cleared = ledger.clear()
        for ref in released_media(ledger, cleared):
            ref.release()
        result.ledger = cleared
        try:
            result.snapshot = self._loader.load()
        except Exception as exc:
            # Everything is committed, so the ledger stays cleared either way.
            result.error = PublishError(
                "Publish committed but the catalog could not be reloaded",
                details={"reason": str(exc)},
            )
            result.error.__cause__ = exc
            return self._fail(result, PublishStage.RECONCILING)

        self._enter(PublishStage.IDLE)
        LOGGER.info(
            "Publish finished",
            extra={"event": "publish.done", "tenant": self.tenant, "result": result.as_dict()},
        )
        return result

    def _enter(self, stage: PublishStage) -> None:
        self.stage = stage
        LOGGER.debug("Publish stage: %s", stage.value, extra={"event": "publish.stage"})

    def _fail(self, result: PublishResult, stage: PublishStage) -> PublishResult:
        result.failed_stage = stage
        self.stage = PublishStage.FAILED
        LOGGER.error(
            "Publish failed during %s",
            stage.value,
            extra={"event": "publish.failed", "tenant": self.tenant, "result": result.as_dict()},
        )
        return result

    def _stamp(self, change: PendingChange) -> PendingChange:
        if change.kind is ChangeKind.DELETED:
            return change
        now = self._clock()
        payload = change.payload.with_changes(updated_at=now)
        if change.kind is ChangeKind.NEW and payload.created_at is None:
            payload = payload.with_changes(created_at=now)
        return replace(change, payload=payload)

    @staticmethod
    def _record(
        result: PublishResult, chunk: Sequence[PlannedOp], assigned: Sequence[ItemId | None]
    ) -> None:
        for entry in chunk:
            if entry.kind is ChangeKind.NEW:
                result.created += 1
            elif entry.kind is ChangeKind.MODIFIED:
                result.updated += 1
            else:
                result.deleted += 1
        for entry, item_id in zip(chunk, assigned):
            if entry.kind is ChangeKind.NEW and item_id is not None:
                result.assigned_ids[entry.change_id] = item_id
        result.batches_committed += 1


def _failing_item(chunk: Sequence[PlannedOp], exc: BaseException) -> str:
    """Prefer the item the store blamed; fall back to the chunk's first entry."""
    details = getattr(exc, "details", None) or {}
    blamed = details.get("item_id")
    if blamed is not None and any(entry.change_id == blamed for entry in chunk):
        return str(blamed)
    return chunk[0].change_id


__all__ = ["PublishOrchestrator", "PublishResult", "PublishStage"]
