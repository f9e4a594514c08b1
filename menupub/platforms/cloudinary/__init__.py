"""Cloudinary media upload adapter."""

from __future__ import annotations

from .media import CloudinaryUploader

__all__ = ["CloudinaryUploader"]
