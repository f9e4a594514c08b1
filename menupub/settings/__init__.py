"""Settings package exports."""

from .loader import (
    AppConfig,
    HttpSettings,
    PathSettings,
    StoreSettings,
    UploadSettings,
    load_config,
)

__all__ = [
    "AppConfig",
    "HttpSettings",
    "PathSettings",
    "StoreSettings",
    "UploadSettings",
    "load_config",
]
