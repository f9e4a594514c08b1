"""Immutable view of the published catalog and its loader."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping

from ..utils.logging import get_logger
from .models import CatalogItem, ItemId, StoredItem

if TYPE_CHECKING:
    from ..platforms.base import CatalogStore

LOGGER = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(slots=True, frozen=True)
class CatalogSnapshot:
    """The last-read published catalog for a tenant, keyed by ``ItemId``."""

    tenant: str
    items: Mapping[ItemId, CatalogItem] = field(default_factory=dict)
    loaded_at: str = field(default_factory=_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", MappingProxyType(dict(self.items)))

    @classmethod
    def from_stored(cls, tenant: str, stored: Iterable[StoredItem]) -> "CatalogSnapshot":
        return cls(tenant=tenant, items={entry.id: entry.item for entry in stored})

    @classmethod
    def empty(cls, tenant: str) -> "CatalogSnapshot":
        return cls(tenant=tenant)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.items

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ItemId]:
        return iter(self.items)

    def get(self, item_id: ItemId) -> CatalogItem | None:
        return self.items.get(item_id)

    def find_by_name(self, name: str) -> ItemId | None:
        """Return the first item whose trimmed name equals ``name``."""
        wanted = name.strip()
        for item_id, item in self.items.items():
            if item.name.strip() == wanted:
                return item_id
        return None


class SnapshotLoader:
    """Reads the full published catalog for one tenant."""

    def __init__(self, store: CatalogStore, tenant: str) -> None:
        self._store = store
        self._tenant = tenant

    @property
    def tenant(self) -> str:
        return self._tenant

    def load(self) -> CatalogSnapshot:
        stored = self._store.read_all(self._tenant)
        snapshot = CatalogSnapshot.from_stored(self._tenant, stored)
        LOGGER.info(
            "Catalog snapshot loaded",
            extra={"event": "snapshot.loaded", "tenant": self._tenant, "items": len(snapshot)},
        )
        return snapshot


__all__ = ["CatalogSnapshot", "SnapshotLoader"]
