"""Helpers for loading configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

try:  # pragma: no cover - Python 3.11+ includes tomllib
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for older versions
    import tomli as tomllib  # type: ignore[no-redef]

from ..core.errors import ConfigError
from ..platforms.base import DEFAULT_MAX_BATCH_SIZE

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_NAME = "config.toml"
CONFIG_ENV_VAR = "MENUPUB_CONFIG"
BATCH_SIZE_ENV_VAR = "MENUPUB_MAX_BATCH_SIZE"

_STORE_BACKENDS = {"local", "firestore"}
_UPLOAD_BACKENDS = {"local", "cloudinary"}


@dataclass(slots=True)
class HttpSettings:
    timeout: float = 30.0


@dataclass(slots=True)
class PathSettings:
    data_dir: Path
    state_dir: Path
    media_dir: Path
    log_dir: Path

    def drafts_dir(self) -> Path:
        return self.state_dir / "drafts"

    def staging_dir(self, tenant: str) -> Path:
        """Temporary copies of media picked for staged edits."""
        return self.state_dir / "staging" / tenant

    def catalog_file(self, tenant: str) -> Path:
        return self.data_dir / "catalog" / f"{tenant}.json"

    def log_file(self) -> Path:
        return self.log_dir / "menupub.jsonl"


@dataclass(slots=True)
class StoreSettings:
    backend: str = "local"
    project_id: str | None = None
    database: str = "(default)"
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE


@dataclass(slots=True)
class UploadSettings:
    backend: str = "local"
    cloud_name: str | None = None
    folder_root: str = "menu-cards/restaurants"
    workers: int = 1
    max_image_bytes: int = 5 * 1024 * 1024
    max_video_bytes: int = 50 * 1024 * 1024


@dataclass(slots=True)
class AppConfig:
    tenant: str
    http: HttpSettings
    paths: PathSettings
    store: StoreSettings
    upload: UploadSettings
    secrets_file: Path | None = None

    def with_overrides(
        self, *, tenant: str | None = None, max_batch_size: int | None = None
    ) -> "AppConfig":
        config = self
        if tenant:
            config = replace(config, tenant=tenant)
        if max_batch_size is not None:
            config = replace(
                config,
                store=replace(config.store, max_batch_size=_batch_size(max_batch_size)),
            )
        return config


def _to_path(value: str | None, *, fallback: Path, base: Path = PROJECT_ROOT) -> Path:
    if not value:
        return fallback
    candidate = Path(value)
    return candidate if candidate.is_absolute() else base / candidate


def _config_path(explicit: str | os.PathLike[str] | None) -> tuple[Path, bool]:
    if explicit:
        return _to_path(str(explicit), fallback=PROJECT_ROOT / DEFAULT_CONFIG_NAME), True
    env_value = os.environ.get(CONFIG_ENV_VAR)
    if env_value:
        return _to_path(env_value, fallback=PROJECT_ROOT / DEFAULT_CONFIG_NAME), True
    return PROJECT_ROOT / DEFAULT_CONFIG_NAME, False


def _load_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return {}
    try:
        with path.open("rb") as fp:
            return tomllib.load(fp)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read config file: {path}", details={"error": str(exc)}) from exc


def _ensure_directories(paths: Iterable[Path]) -> None:
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)


def _number(name: str, value: Any, cast: Callable[[Any], Any] = int, *, minimum: float = 1) -> Any:
    try:
        number = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number", details={"value": value}) from exc
    if number < minimum:
        raise ConfigError(f"{name} must be at least {minimum}", details={"value": number})
    return number


def _batch_size(value: Any) -> int:
    return _number("max_batch_size", value)


def _choice(section: str, value: Any, allowed: set[str]) -> str:
    text = str(value).lower()
    if text not in allowed:
        raise ConfigError(
            f"Unsupported {section} backend: {value}",
            details={"allowed": sorted(allowed)},
        )
    return text


def _build_store(section: Mapping[str, Any], env: Mapping[str, str]) -> StoreSettings:
    raw_size = env.get(BATCH_SIZE_ENV_VAR) or section.get("max_batch_size", DEFAULT_MAX_BATCH_SIZE)
    return StoreSettings(
        backend=_choice("store", section.get("backend", "local"), _STORE_BACKENDS),
        project_id=section.get("project_id"),
        database=str(section.get("database", "(default)")),
        max_batch_size=_batch_size(raw_size),
    )


def _build_upload(section: Mapping[str, Any]) -> UploadSettings:
    defaults = UploadSettings()
    workers = _number("upload.workers", section.get("workers", defaults.workers))
    return UploadSettings(
        backend=_choice("upload", section.get("backend", "local"), _UPLOAD_BACKENDS),
        cloud_name=section.get("cloud_name"),
        folder_root=str(section.get("folder_root", defaults.folder_root)).strip("/"),
        workers=workers,
        max_image_bytes=_number(
            "upload.max_image_bytes", section.get("max_image_bytes", defaults.max_image_bytes)
        ),
        max_video_bytes=_number(
            "upload.max_video_bytes", section.get("max_video_bytes", defaults.max_video_bytes)
        ),
    )


def load_config(
    config_path: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load ``config.toml``.

    An explicit path (argument or ``MENUPUB_CONFIG``) must exist. Without one,
    a missing project-level ``config.toml`` yields the local-backend defaults.
    """
    environ = env if env is not None else os.environ
    path, required = _config_path(config_path)
    data = _load_toml(path, required=required)
    base = path.parent if required else PROJECT_ROOT

    app_section = data.get("app", {})
    paths_section = data.get("paths", {})
    http_section = data.get("http", {})
    secrets_section = data.get("secrets", {})

    data_dir = _to_path(paths_section.get("data_dir"), fallback=base / "data", base=base)
    state_dir = _to_path(paths_section.get("state_dir"), fallback=data_dir / "state", base=base)
    media_dir = _to_path(paths_section.get("media_dir"), fallback=data_dir / "media", base=base)
    log_dir = _to_path(paths_section.get("log_dir"), fallback=data_dir / "logs", base=base)
    _ensure_directories((data_dir, state_dir, media_dir, log_dir))

    secrets_value = secrets_section.get("file")
    secrets_file = _to_path(secrets_value, fallback=base, base=base) if secrets_value else None

    return AppConfig(
        tenant=str(app_section.get("tenant", "demo")),
        http=HttpSettings(
            timeout=_number("http.timeout", http_section.get("timeout", 30), float, minimum=0.001)
        ),
        paths=PathSettings(
            data_dir=data_dir,
            state_dir=state_dir,
            media_dir=media_dir,
            log_dir=log_dir,
        ),
        store=_build_store(data.get("store", {}), environ),
        upload=_build_upload(data.get("upload", {})),
        secrets_file=secrets_file,
    )

