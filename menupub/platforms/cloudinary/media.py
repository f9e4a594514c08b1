"""Cloudinary unsigned upload client."""

from __future__ import annotations

from ...core.errors import UploadError
from ...core.http import HttpSession
from ...security import SecretNotFoundError, SecretProvider
from ...utils.logging import get_logger
from ..base import MediaBlob, UploadResult

LOGGER = get_logger(__name__)


class CloudinaryUploader:
    """Uploads menu media to ``{folder_root}/{tenant}/menu-items`` or ``/videos``."""

    _UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud}/auto/upload"

    def __init__(
        self,
        *,
        tenant: str,
        secrets: SecretProvider,
        http: HttpSession,
        cloud_name: str | None = None,
        folder_root: str = "menu-cards/restaurants",
        max_image_bytes: int = 5 * 1024 * 1024,
        max_video_bytes: int = 50 * 1024 * 1024,
    ) -> None:
        self._tenant = tenant
        self._secrets = secrets
        self._http = http
        self._cloud_name = cloud_name
        self._folder_root = folder_root.strip("/")
        self._max_image_bytes = max_image_bytes
        self._max_video_bytes = max_video_bytes

    def folder_for(self, kind: str) -> str:
        leaf = "videos" if kind == "video" else "menu-items"
        return f"{self._folder_root}/{self._tenant}/{leaf}"

    def upload(self, blob: MediaBlob) -> UploadResult:
        self._check_size(blob)
        cloud = self._cloud_name or self._secret("cloudinary.cloud_name")
        preset = self._secret("cloudinary.upload_preset")
        resource_type = "video" if blob.kind == "video" else "image"

        response = self._http.request_json(
            "POST",
            self._UPLOAD_URL.format(cloud=cloud),
            error_cls=UploadError,
            context={"filename": blob.filename},
            files={"file": (blob.filename, blob.content, blob.content_type)},
            data={
                "upload_preset": preset,
                "folder": self.folder_for(blob.kind),
                "resource_type": resource_type,
            },
        )
        data = response.data
        if "error" in data:
            raise UploadError(
                "Upload rejected by Cloudinary",
                details={"filename": blob.filename, "error": data["error"]},
            )
        url = data.get("secure_url") or data.get("url")
        if not url:
            raise UploadError(
                "Upload succeeded but no URL was returned",
                details={"filename": blob.filename, "response": data},
            )
        LOGGER.info(
            "Uploaded %s",
            blob.filename,
            extra={"event": "upload.cloudinary", "tenant": self._tenant, "bytes": blob.size},
        )
        return UploadResult(url=url, public_id=data.get("public_id"), size=data.get("bytes"))

    def _check_size(self, blob: MediaBlob) -> None:
        limit = self._max_video_bytes if blob.kind == "video" else self._max_image_bytes
        if blob.size > limit:
            raise UploadError(
                f"{blob.kind.capitalize()} must be less than {limit / 1024 / 1024:.0f}MB",
                details={"filename": blob.filename, "size_mb": round(blob.size / 1024 / 1024, 2)},
            )

    def _secret(self, key: str) -> str:
        try:
            return self._secrets.get_secret(key)
        except SecretNotFoundError as exc:
            raise UploadError("Missing Cloudinary credential", details={"secret": key}) from exc


__all__ = ["CloudinaryUploader"]
