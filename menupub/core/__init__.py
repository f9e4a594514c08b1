"""Core primitives shared by the platform adapters."""

from .errors import (
    BatchCommitError,
    ConfigError,
    MediaResolutionError,
    MenuPubError,
    PublishCancelled,
    PublishError,
    StoreError,
    UnknownItemError,
    UploadError,
)
from .http import HttpSession, JsonResponse

__all__ = [
    "BatchCommitError",
    "ConfigError",
    "HttpSession",
    "JsonResponse",
    "MediaResolutionError",
    "MenuPubError",
    "PublishCancelled",
    "PublishError",
    "StoreError",
    "UnknownItemError",
    "UploadError",
]
