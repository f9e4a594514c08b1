"""Data models for menu items and staged changes."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from ..utils.logging import get_logger

LOGGER = get_logger(__name__)

ItemId = str
LocalId = str

LOCAL_ID_PREFIX = "local-"
CURRENCIES = ("INR", "USD", "EUR", "GBP")
DIET_TYPES = ("veg", "non-veg", "vegan")
MAX_IMAGES = 3
MAX_VIDEOS = 2

_local_counter = itertools.count(1)
_local_lock = threading.Lock()


def mint_local_id() -> LocalId:
    """Return a process-unique id for an item that has no store identity yet."""
    with _local_lock:
        return f"{LOCAL_ID_PREFIX}{next(_local_counter)}"


def reserve_local_ids(floor: int) -> None:
    """Advance the counter past ``floor`` so restored drafts never collide."""
    global _local_counter
    with _local_lock:
        current = next(_local_counter)
        _local_counter = itertools.count(max(current, floor + 1))


def is_local_id(value: str) -> bool:
    return value.startswith(LOCAL_ID_PREFIX)


def local_id_number(value: LocalId) -> int:
    return int(value[len(LOCAL_ID_PREFIX):])


class ChangeKind(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    DELETED = "deleted"


class RowStatus(str, Enum):
    PUBLISHED = "published"
    NEW = "new"
    MODIFIED = "modified"
    PENDING_DELETE = "pending_delete"


def _to_decimal(value: Any, *, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid price: {value!r}") from exc


def _optional_level(value: Any) -> int | None:
    if value in (None, ""):
        return None
    level = int(value)
    if not 1 <= level <= 5:
        raise ValueError(f"Level must be between 1 and 5, got {level}")
    return level


def _ignore_stored(extra: dict[str, Any], key: str, value: Any, item_name: str) -> None:
    # Kept verbatim under its own key so a later update writes it back untouched.
    if not (isinstance(value, float) and value != value):
        extra[key] = value
    LOGGER.warning(
        "Ignoring invalid %s %r on stored item %r",
        key,
        value,
        item_name,
        extra={"event": "catalog.field_ignored", "field": key, "item": item_name},
    )


def _stored_level(
    data: Mapping[str, Any], key: str, extra: dict[str, Any], item_name: str
) -> int | None:
    value = data.get(key, data.get(f"{key}_level"))
    try:
        return _optional_level(value)
    except (TypeError, ValueError, OverflowError):
        if key in data:
            _ignore_stored(extra, key, value, item_name)
        return None


def _stored_diet(data: Mapping[str, Any], extra: dict[str, Any], item_name: str) -> str | None:
    value = data.get("dietType")
    if not value:
        return None
    diet = str(value).strip().lower()
    if diet in DIET_TYPES:
        return diet
    _ignore_stored(extra, "dietType", value, item_name)
    return None


def _stored_currency(data: Mapping[str, Any], extra: dict[str, Any], item_name: str) -> str:
    value = data.get("currency")
    if not value:
        return "INR"
    currency = str(value).strip().upper()
    if currency in CURRENCIES:
        return currency
    _ignore_stored(extra, "currency", value, item_name)
    return "INR"


def _split_ingredients(text: str) -> list[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


@dataclass(slots=True, frozen=True)
class Portion:
    """A priced size of an item, e.g. "Half" or "500ml"."""

    label: str
    price: Decimal
    currency: str = "INR"
    default: bool = False

    def to_document(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "price": float(self.price),
            "currency": self.currency,
            "default": self.default,
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "Portion":
        return cls(
            label=str(data.get("label", "Full")),
            price=_to_decimal(data.get("price")),
            currency=str(data.get("currency") or "INR"),
            default=bool(data.get("default", False)),
        )


_DOCUMENT_FIELDS = {
    "name",
    "section",
    "price",
    "currency",
    "description",
    "ingredients",
    "dietType",
    "spice",
    "sweet",
    "is_todays_special",
    "is_unavailable",
    "is_new",
    "image",
    "images",
    "video",
    "videos",
    "portions",
    "createdAt",
    "updatedAt",
}


@dataclass(slots=True, frozen=True)
class CatalogItem:
    """A menu item as stored in the catalog."""

    name: str
    section: str
    price: Decimal
    currency: str = "INR"
    description: str = ""
    ingredients: str = ""
    ingredients_as_list: bool = False
    diet_type: str | None = None
    spice_level: int | None = None
    sweet_level: int | None = None
    is_todays_special: bool = False
    is_unavailable: bool = False
    is_new: bool = False
    image: str | None = None
    images: tuple[str, ...] = ()
    video: str | None = None
    videos: tuple[str, ...] = ()
    portions: tuple[Portion, ...] = ()
    created_at: str | None = None
    updated_at: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.currency not in CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")
        if self.diet_type is not None and self.diet_type not in DIET_TYPES:
            raise ValueError(f"dietType must be one of {', '.join(DIET_TYPES)}")

    def with_changes(self, **changes: Any) -> "CatalogItem":
        return replace(self, **changes)

    def to_document(self) -> dict[str, Any]:
        """Render the item using the store's field names, omitting empty optionals."""
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "name": self.name,
                "section": self.section,
                "price": str(self.price),
                "description": self.description,
                "is_todays_special": self.is_todays_special,
                "is_unavailable": self.is_unavailable,
                "is_new": self.is_new,
            }
        )
        optional = {
            "dietType": self.diet_type,
            "spice": self.spice_level,
            "sweet": self.sweet_level,
            "image": self.image,
            "video": self.video,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.currency != "INR" or "currency" not in self.extra:
            data["currency"] = self.currency
        if self.ingredients_as_list:
            data["ingredients"] = _split_ingredients(self.ingredients)
        else:
            data["ingredients"] = self.ingredients
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.images:
            data["images"] = list(self.images)
        if self.videos:
            data["videos"] = list(self.videos)
        if self.portions:
            data["portions"] = [portion.to_document() for portion in self.portions]
        return data

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "CatalogItem":
        """Decode a stored document.

        Stored data is written by other clients too, so an out-of-range level,
        an unknown diet or currency is logged and left out of the typed
        fields instead of failing the whole catalog read. Ingredients may be a
        comma-separated string or a list; the list form is written back as a
        list.
        """
        name = str(data.get("name", "")).strip()
        extra = {key: value for key, value in data.items() if key not in _DOCUMENT_FIELDS}
        ingredients = data.get("ingredients") or ""
        as_list = isinstance(ingredients, (list, tuple))
        if as_list:
            ingredients = ", ".join(str(part).strip() for part in ingredients if str(part).strip())
        return cls(
            name=name,
            section=str(data.get("section", "")).strip(),
            price=_to_decimal(data.get("price")),
            currency=_stored_currency(data, extra, name),
            description=str(data.get("description") or ""),
            ingredients=str(ingredients),
            ingredients_as_list=as_list,
            diet_type=_stored_diet(data, extra, name),
            spice_level=_stored_level(data, "spice", extra, name),
            sweet_level=_stored_level(data, "sweet", extra, name),
            is_todays_special=bool(data.get("is_todays_special", False)),
            is_unavailable=bool(data.get("is_unavailable", False)),
            is_new=bool(data.get("is_new", False)),
            image=data.get("image") or None,
            images=tuple(data.get("images") or ()),
            video=data.get("video") or None,
            videos=tuple(data.get("videos") or ()),
            portions=tuple(Portion.from_document(p) for p in data.get("portions") or ()),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            extra=extra,
        )


@dataclass(slots=True)
class LocalMediaRef:
    """A not-yet-uploaded media file chosen by the owner.

    When ``owned`` is true the ref holds a temporary copy of the file and
    removes it on :meth:`release`.
    """

    path: Path
    kind: str = "image"
    owned: bool = False
    released: bool = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        if not self.owned:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning(
                "Failed to remove temporary media %s: %s",
                self.path,
                exc,
                extra={"event": "media.release_failed"},
            )

    def to_dict(self) -> dict[str, object]:
        return {"path": str(self.path), "kind": self.kind, "owned": self.owned}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LocalMediaRef":
        return cls(
            path=Path(str(data["path"])),
            kind=str(data.get("kind", "image")),
            owned=bool(data.get("owned", False)),
        )


@dataclass(slots=True, frozen=True)
class PendingChange:
    """A staged edit for one item identity."""

    id: str
    kind: ChangeKind
    payload: CatalogItem
    unresolved_media: tuple[LocalMediaRef, ...] = ()
    prior_kind: ChangeKind | None = None
    sequence: int = 0


@dataclass(slots=True, frozen=True)
class StoredItem:
    """An item read back from the store together with its identity."""

    id: ItemId
    item: CatalogItem


@dataclass(slots=True, frozen=True)
class ProjectedRow:
    id: str
    payload: CatalogItem
    status: RowStatus


__all__ = [
    "CURRENCIES",
    "CatalogItem",
    "ChangeKind",
    "DIET_TYPES",
    "ItemId",
    "LocalId",
    "LocalMediaRef",
    "MAX_IMAGES",
    "MAX_VIDEOS",
    "PendingChange",
    "Portion",
    "ProjectedRow",
    "RowStatus",
    "StoredItem",
    "is_local_id",
    "local_id_number",
    "mint_local_id",
    "reserve_local_ids",
]
