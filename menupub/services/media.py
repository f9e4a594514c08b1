"""Upload staged local media and fold the resulting URLs into payloads."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Sequence

from ..catalog.models import MAX_IMAGES, MAX_VIDEOS, CatalogItem, ChangeKind, PendingChange
from ..core.errors import MediaResolutionError
from ..platforms.base import MediaBlob, UploadClient
from ..utils.logging import get_logger

LOGGER = get_logger(__name__)


class MediaResolver:
    """Resolves every ``unresolved_media`` ref of a set of changes.

    Within one change, uploads run sequentially in list order so the first
    uploaded image deterministically becomes the primary ``image``. With
    ``workers > 1`` different changes upload concurrently, one future per
    change. Deleted entries are skipped since their media would never be
    referenced.
    """

    def __init__(self, uploader: UploadClient, *, workers: int = 1) -> None:
        self._uploader = uploader
        self._workers = max(1, workers)

    def resolve(self, changes: Sequence[PendingChange]) -> dict[str, CatalogItem]:
        """Return resolved payloads keyed by change id.

        Raises :class:`MediaResolutionError` naming the first failing change
        in ledger order.
        """
        pending = [
            change
            for change in changes
            if change.unresolved_media and change.kind is not ChangeKind.DELETED
        ]
        if not pending:
            return {}

        LOGGER.info(
            "Resolving media",
            extra={
                "event": "publish.media",
                "changes": len(pending),
                "files": sum(len(change.unresolved_media) for change in pending),
            },
        )
        if self._workers == 1 or len(pending) == 1:
            return {change.id: self._resolve_change(change) for change in pending}

        resolved: dict[str, CatalogItem] = {}
        executor = ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="menupub-upload")
        try:
            futures: list[tuple[PendingChange, Future[CatalogItem]]] = [
                (change, executor.submit(self._resolve_change, change)) for change in pending
            ]
            for change, future in futures:
                resolved[change.id] = future.result()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return resolved

    def _resolve_change(self, change: PendingChange) -> CatalogItem:
        image_urls: list[str] = []
        video_urls: list[str] = []
        for ref in change.unresolved_media:
            try:
                blob = MediaBlob.from_path(ref.path, kind=ref.kind)
            except OSError as exc:
                raise MediaResolutionError(
                    "Staged media file is unreadable",
                    item_id=change.id,
                    details={"path": str(ref.path), "reason": str(exc)},
                ) from exc
            try:
                result = self._uploader.upload(blob)
            except Exception as exc:
                raise MediaResolutionError(
                    "Media upload failed",
                    item_id=change.id,
                    details={"path": str(ref.path), "reason": str(exc)},
                ) from exc
            (video_urls if ref.kind == "video" else image_urls).append(result.url)
        return apply_urls(change.payload, image_urls, video_urls)


def apply_urls(
    payload: CatalogItem, image_urls: Sequence[str], video_urls: Sequence[str]
) -> CatalogItem:
    """Put uploaded URLs ahead of existing ones; the first new URL becomes primary."""
    changes: dict[str, object] = {}
    if image_urls:
        changes["images"] = tuple(dict.fromkeys([*image_urls, *payload.images]))[:MAX_IMAGES]
        changes["image"] = image_urls[0]
    if video_urls:
        changes["videos"] = tuple(dict.fromkeys([*video_urls, *payload.videos]))[:MAX_VIDEOS]
        changes["video"] = video_urls[0]
    return payload.with_changes(**changes) if changes else payload


__all__ = ["MediaResolver", "apply_urls"]
