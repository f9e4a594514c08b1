"""Secret lookup for backend credentials.

Keys use ``section.option`` form, e.g. ``cloudinary.upload_preset`` or
``firestore.access_token``. The environment variable for a key is the key
upper-cased with dots replaced by underscores and the ``MENUPUB_`` prefix,
so ``firestore.access_token`` reads ``MENUPUB_FIRESTORE_ACCESS_TOKEN``.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from configparser import ConfigParser
from pathlib import Path
from typing import Iterable, Mapping

ENV_PREFIX = "MENUPUB_"


class SecretNotFoundError(KeyError):
    """Raised when a secret cannot be resolved."""


class SecretProvider(ABC):
    @abstractmethod
    def get_secret(self, key: str) -> str:
        """Return the secret associated with ``key``."""

    def get_optional(self, key: str) -> str | None:
        try:
            return self.get_secret(key)
        except SecretNotFoundError:
            return None


class EnvSecretProvider(SecretProvider):
    """Reads secrets from environment variables."""

    def __init__(self, env: Mapping[str, str] | None = None, *, prefix: str = ENV_PREFIX) -> None:
        self._env = env if env is not None else os.environ
        self._prefix = prefix

    def env_name(self, key: str) -> str:
        return f"{self._prefix}{key}".upper().replace(".", "_")

    def get_secret(self, key: str) -> str:
        value = self._env.get(self.env_name(key))
        if not value:
            raise SecretNotFoundError(key)
        return value


class FileSecretProvider(SecretProvider):
    """Loads secrets from an INI file with one section per backend."""

    def __init__(self, path: Path) -> None:
        self._parser = ConfigParser()
        if path.exists():
            self._parser.read(path, encoding="utf-8")

    def get_secret(self, key: str) -> str:
        section, _, option = key.partition(".")
        if section and option and self._parser.has_option(section, option):
            value = self._parser.get(section, option).strip()
            if value:
                return value
        raise SecretNotFoundError(key)


class MappingSecretProvider(SecretProvider):
    """Wraps a plain dictionary; handy in tests."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping = dict(mapping)

    def get_secret(self, key: str) -> str:
        try:
            return self._mapping[key]
        except KeyError as exc:
            raise SecretNotFoundError(key) from exc


class ChainedSecretProvider(SecretProvider):
    """Tries providers in order until one returns a secret."""

    def __init__(self, providers: Iterable[SecretProvider]) -> None:
        self._providers = tuple(providers)

    def get_secret(self, key: str) -> str:
        for provider in self._providers:
            try:
                return provider.get_secret(key)
            except SecretNotFoundError:
                continue
        raise SecretNotFoundError(key)


def default_secret_provider(secrets_file: Path | None = None) -> SecretProvider:
    """Environment first, then the optional secrets file."""
    providers: list[SecretProvider] = [EnvSecretProvider()]
    if secrets_file is not None:
        providers.append(FileSecretProvider(secrets_file))
    return ChainedSecretProvider(providers)


__all__ = [
    "ChainedSecretProvider",
    "EnvSecretProvider",
    "FileSecretProvider",
    "MappingSecretProvider",
    "SecretNotFoundError",
    "SecretProvider",
    "default_secret_provider",
]
