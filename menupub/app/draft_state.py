"""Persistence helpers for staged (unpublished) edits."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ..catalog.ledger import StagingLedger
from ..catalog.models import (
    CatalogItem,
    ChangeKind,
    LocalMediaRef,
    PendingChange,
    is_local_id,
    local_id_number,
    reserve_local_ids,
)
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

DRAFT_VERSION = 1


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _slugify(value: str) -> str:
    lowered = value.lower()
    safe = [ch if ch.isalnum() or ch in {"-", "_"} else "-" for ch in lowered]
    slug = "".join(safe).strip("-")
    return slug or "default"


def _change_to_dict(change: PendingChange) -> dict[str, object]:
    return {
        "id": change.id,
        "kind": change.kind.value,
        "payload": change.payload.to_document(),
        "media": [ref.to_dict() for ref in change.unresolved_media],
        "prior_kind": change.prior_kind.value if change.prior_kind else None,
        "sequence": change.sequence,
    }


def _change_from_dict(data: dict[str, object]) -> PendingChange:
    raw_media = data.get("media") or []
    if not isinstance(raw_media, list):  # pragma: no cover - defensive
        raise ValueError("Invalid draft state: 'media' must be a list")
    prior = data.get("prior_kind")
    return PendingChange(
        id=str(data["id"]),
        kind=ChangeKind(str(data["kind"])),
        payload=CatalogItem.from_document(data.get("payload") or {}),  # type: ignore[arg-type]
        unresolved_media=tuple(LocalMediaRef.from_dict(item) for item in raw_media),
        prior_kind=ChangeKind(str(prior)) if prior else None,
        sequence=int(data.get("sequence", 0)),  # type: ignore[arg-type]
    )


@dataclass(slots=True)
class DraftState:
    """Staged edits of one tenant as written to disk."""

    tenant: str
    changes: list[PendingChange] = field(default_factory=list)
    updated_at: str = field(default_factory=_now)

    @classmethod
    def from_ledger(cls, tenant: str, ledger: StagingLedger) -> "DraftState":
        return cls(tenant=tenant, changes=list(ledger.entries()))

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DraftState":
        raw_changes = data.get("changes", [])
        if not isinstance(raw_changes, list):  # pragma: no cover - defensive
            raise ValueError("Invalid draft state: 'changes' must be a list")
        return cls(
            tenant=str(data.get("tenant", "default")),
            changes=[_change_from_dict(item) for item in raw_changes],
            updated_at=str(data.get("updated_at", _now())),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "version": DRAFT_VERSION,
            "tenant": self.tenant,
            "updated_at": self.updated_at,
            "changes": [_change_to_dict(change) for change in self.changes],
        }

    def to_ledger(self) -> StagingLedger:
        """Rebuild the ledger and keep freshly minted local ids from colliding."""
        local_numbers = [local_id_number(c.id) for c in self.changes if is_local_id(c.id)]
        if local_numbers:
            reserve_local_ids(max(local_numbers))
        return StagingLedger.from_entries(self.changes)


class DraftStateStore:
    """Stores staged edits on disk under the configured state directory."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def path_for(self, tenant: str) -> Path:
        return self._root / f"{_slugify(tenant)}.json"

    def load(self, tenant: str) -> StagingLedger:
        path = self.path_for(tenant)
        if not path.exists():
            return StagingLedger()
        data = json.loads(path.read_text(encoding="utf-8"))
        state = DraftState.from_dict(data)
        return state.to_ledger()

    def save(self, tenant: str, ledger: StagingLedger) -> Path | None:
        """Write the ledger; an empty ledger removes the draft file instead."""
        if not ledger:
            self.delete(tenant)
            return None
        path = self.path_for(tenant)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            DraftState.from_ledger(tenant, ledger).to_dict(), ensure_ascii=False, indent=2
        )
        fd, tmp_name = tempfile.mkstemp(prefix=".draft-", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.debug(
            "Draft saved",
            extra={"event": "draft.saved", "tenant": tenant, "changes": len(ledger)},
        )
        return path

    def delete(self, tenant: str) -> None:
        path = self.path_for(tenant)
        if path.exists():
            path.unlink()


__all__ = ["DraftState", "DraftStateStore"]
