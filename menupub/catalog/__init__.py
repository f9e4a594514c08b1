"""Catalog domain: items, the staging ledger and the display projection."""

from __future__ import annotations

from .ledger import StagingLedger, released_media
from .models import (
    CatalogItem,
    ChangeKind,
    LocalMediaRef,
    PendingChange,
    Portion,
    ProjectedRow,
    RowStatus,
    StoredItem,
    is_local_id,
)
from .projector import ProjectionSummary, project, search, summarize
from .snapshot import CatalogSnapshot, SnapshotLoader

__all__ = [
    "CatalogItem",
    "CatalogSnapshot",
    "ChangeKind",
    "LocalMediaRef",
    "PendingChange",
    "Portion",
    "ProjectedRow",
    "ProjectionSummary",
    "RowStatus",
    "SnapshotLoader",
    "StagingLedger",
    "StoredItem",
    "is_local_id",
    "project",
    "released_media",
    "search",
    "summarize",
]
