"""Thin ``requests`` wrapper used by the HTTP platform adapters."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import requests

from ..utils.logging import get_logger
from .errors import MenuPubError

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class JsonResponse:
    url: str
    status: int
    data: Any
    elapsed: float


class HttpSession:
    """Issues JSON requests and converts transport failures into ``error_cls``.

    No retries happen here; retry policy belongs to the caller.

    Without an injected ``session`` each thread gets its own
    ``requests.Session`` from ``session_factory``. An injected session is
    shared by every thread.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        headers: Mapping[str, str] | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._timeout = timeout
        self._shared = session
        self._headers = dict(headers or {})
        self._factory = session_factory
        self._local = threading.local()
        self._opened: list[requests.Session] = []
        self._lock = threading.Lock()
        if session is not None and self._headers:
            session.headers.update(self._headers)

    @property
    def timeout(self) -> float:
        return self._timeout

    def _current(self) -> requests.Session:
        if self._shared is not None:
            return self._shared
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._factory()
            session.headers.update(self._headers)
            self._local.session = session
            with self._lock:
                self._opened.append(session)
        return session

    def request_json(
        self,
        method: str,
        url: str,
        *,
        error_cls: type[MenuPubError],
        context: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> JsonResponse:
        details = dict(context or {})
        start = time.monotonic()
        try:
            response = self._current().request(
                method.upper(),
                url,
                headers=dict(headers or {}),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise error_cls(
                f"{method.upper()} request failed",
                details={**details, "url": url, "reason": str(exc)},
            ) from exc

        elapsed = time.monotonic() - start
        if response.status_code >= 400:
            raise error_cls(
                f"{method.upper()} request rejected with HTTP {response.status_code}",
                details={**details, "url": url, "response": response.text[:200]},
            )

        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise error_cls(
                "Failed to parse JSON response",
                details={**details, "url": url, "response": response.text[:200]},
            ) from exc

        LOGGER.debug(
            "HTTP %s %s -> %s",
            method.upper(),
            url,
            response.status_code,
            extra={"event": "http.response", "elapsed": round(elapsed, 3)},
        )
        return JsonResponse(url=url, status=response.status_code, data=data, elapsed=elapsed)

    def close(self) -> None:
        if self._shared is not None:
            self._shared.close()
        with self._lock:
            opened, self._opened = self._opened, []
        for session in opened:
            session.close()
        self._local = threading.local()


__all__ = ["HttpSession", "JsonResponse"]
