"""Factory helpers selecting store and upload backends from configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Generic, Mapping, TypeVar

from ..core.errors import ConfigError
from ..core.http import HttpSession
from ..security import SecretProvider, default_secret_provider
from .base import CatalogStore, UploadClient
from .cloudinary import CloudinaryUploader
from .firestore import FirestoreCatalogStore
from .local import LocalCatalogStore, LocalUploadClient

if TYPE_CHECKING:
    from ..settings import AppConfig

T = TypeVar("T")
Builder = Callable[["AppConfig", SecretProvider, HttpSession], T]


class DictBackendFactory(Generic[T]):
    """Simple registry-backed factory."""

    def __init__(self, kind: str, builders: Mapping[str, Builder[T]]) -> None:
        self._kind = kind
        self._builders = {key.lower(): value for key, value in builders.items()}

    def create(self, name: str, config: "AppConfig", secrets: SecretProvider, http: HttpSession) -> T:
        try:
            builder = self._builders[name.lower()]
        except KeyError as exc:
            raise ConfigError(
                f"Unsupported {self._kind} backend: {name}",
                details={"available": sorted(self._builders)},
            ) from exc
        return builder(config, secrets, http)


def _firestore(config: "AppConfig", secrets: SecretProvider, http: HttpSession) -> CatalogStore:
    if not config.store.project_id:
        raise ConfigError("store.project_id is required for the firestore backend")
    return FirestoreCatalogStore(
        project_id=config.store.project_id,
        database=config.store.database,
        secrets=secrets,
        http=http,
    )


def _cloudinary(config: "AppConfig", secrets: SecretProvider, http: HttpSession) -> UploadClient:
    return CloudinaryUploader(
        tenant=config.tenant,
        secrets=secrets,
        http=http,
        cloud_name=config.upload.cloud_name,
        folder_root=config.upload.folder_root,
        max_image_bytes=config.upload.max_image_bytes,
        max_video_bytes=config.upload.max_video_bytes,
    )


STORES: DictBackendFactory[CatalogStore] = DictBackendFactory(
    "store",
    {
        "local": lambda config, _secrets, _http: LocalCatalogStore(
            config.paths.data_dir / "catalog"
        ),
        "firestore": _firestore,
    },
)

UPLOADERS: DictBackendFactory[UploadClient] = DictBackendFactory(
    "upload",
    {
        "local": lambda config, _secrets, _http: LocalUploadClient(
            config.paths.media_dir, tenant=config.tenant
        ),
        "cloudinary": _cloudinary,
    },
)


def build_backends(
    config: "AppConfig",
    *,
    secrets: SecretProvider | None = None,
    http: HttpSession | None = None,
) -> tuple[CatalogStore, UploadClient]:
    """Return the configured ``(store, upload_client)`` pair."""
    provider = secrets or default_secret_provider(config.secrets_file)
    session = http or HttpSession(timeout=config.http.timeout)
    store = STORES.create(config.store.backend, config, provider, session)
    uploader = UPLOADERS.create(config.upload.backend, config, provider, session)
    return store, uploader


__all__ = ["DictBackendFactory", "STORES", "UPLOADERS", "build_backends"]
