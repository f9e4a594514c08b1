"""Firestore catalog store adapter."""

from __future__ import annotations

from .client import FirestoreCatalogStore
from .codec import decode_fields, encode_fields

__all__ = ["FirestoreCatalogStore", "decode_fields", "encode_fields"]
