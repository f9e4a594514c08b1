"""One editor's working state: snapshot, staging ledger and owned media."""

from __future__ import annotations

import shutil
import threading
from pathlib import Path
from typing import Iterable, Sequence

from ..catalog.ledger import StagingLedger, released_media
from ..catalog.models import CatalogItem, LocalId, LocalMediaRef, ProjectedRow
from ..catalog.projector import project, search
from ..catalog.snapshot import CatalogSnapshot, SnapshotLoader
from ..core.errors import UnknownItemError
from ..platforms.base import new_document_id
from ..utils.logging import get_logger
from .publishing import PublishOrchestrator, PublishResult

LOGGER = get_logger(__name__)


class EditSession:
    """Applies ledger operations and releases media that leaves the ledger.

    The ledger itself is an immutable value; this class only swaps the current
    value and takes care of the side effects (temporary media files) that a
    pure reducer cannot.
    """

    def __init__(
        self,
        loader: SnapshotLoader,
        *,
        snapshot: CatalogSnapshot | None = None,
        ledger: StagingLedger | None = None,
        staging_dir: Path | None = None,
    ) -> None:
        self._loader = loader
        self._snapshot = snapshot
        self._ledger = ledger or StagingLedger()
        self._staging_dir = staging_dir

    @property
    def tenant(self) -> str:
        return self._loader.tenant

    @property
    def snapshot(self) -> CatalogSnapshot:
        if self._snapshot is None:
            self._snapshot = self._loader.load()
        return self._snapshot

    @property
    def ledger(self) -> StagingLedger:
        return self._ledger

    def refresh(self) -> CatalogSnapshot:
        self._snapshot = self._loader.load()
        return self._snapshot

    def attach_media(self, paths: Iterable[Path], *, kind: str = "image") -> list[LocalMediaRef]:
        """Take ownership of copies of ``paths`` so the draft survives the originals."""
        refs: list[LocalMediaRef] = []
        for path in paths:
            if not path.is_file():
                raise FileNotFoundError(f"Media file not found: {path}")
            if self._staging_dir is None:
                refs.append(LocalMediaRef(path=path, kind=kind))
                continue
            self._staging_dir.mkdir(parents=True, exist_ok=True)
            target = self._staging_dir / f"{new_document_id(8)}-{path.name}"
            shutil.copy2(path, target)
            refs.append(LocalMediaRef(path=target, kind=kind, owned=True))
        return refs

    def payload_for(self, item_id: str) -> CatalogItem:
        """Return the content the owner currently sees for ``item_id``."""
        change = self._ledger.get(item_id)
        if change is not None:
            return change.payload
        item = self.snapshot.get(item_id)
        if item is None:
            raise UnknownItemError(item_id, operation="payload_for")
        return item

    def create(self, payload: CatalogItem, media: Sequence[LocalMediaRef] = ()) -> LocalId:
        ledger, local_id = self._ledger.stage_create(payload, media)
        self._apply(ledger)
        return local_id

    def update(
        self,
        item_id: str,
        payload: CatalogItem,
        media: Sequence[LocalMediaRef] | None = None,
    ) -> None:
        self._apply(self._ledger.stage_update(self.snapshot, item_id, payload, media))

    def delete(self, item_id: str) -> None:
        self._apply(self._ledger.stage_delete(self.snapshot, item_id))

    def undo_delete(self, item_id: str) -> None:
        self._apply(self._ledger.undo_delete(item_id))

    def discard(self) -> int:
        """Drop every staged edit and return how many there were."""
        count = len(self._ledger)
        self._apply(self._ledger.clear())
        LOGGER.info(
            "Staged edits discarded",
            extra={"event": "ledger.discarded", "tenant": self.tenant, "changes": count},
        )
        return count

    def rows(self, query: str | None = None) -> list[ProjectedRow]:
        rows = project(self.snapshot, self._ledger)
        return search(rows, query) if query else rows

    def publish(
        self,
        orchestrator: PublishOrchestrator,
        *,
        cancel: threading.Event | None = None,
    ) -> PublishResult:
        result = orchestrator.publish(self._ledger, cancel=cancel)
        self._apply(result.ledger)
        if result.snapshot is not None:
            self._snapshot = result.snapshot
        return result

    def _apply(self, ledger: StagingLedger) -> None:
        for ref in released_media(self._ledger, ledger):
            ref.release()
        self._ledger = ledger


__all__ = ["EditSession"]
