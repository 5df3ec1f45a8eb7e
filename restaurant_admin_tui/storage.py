"""Image uploads and cleanup through the backend's storage routes."""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

from .api import ApiClient
from .errors import TransportError

logger = logging.getLogger(__name__)

LOCAL_PREFIXES = ("http://localhost", "http://127.0.0.1")


def is_deletable_image_url(url: Optional[str], fallback_image: str = "/img/mensaje-error.png") -> bool:
    """Whether ``url`` points at an object the storage bucket owns.

    Blank values, the fallback image, site-relative paths and local
    development URLs are never sent to the delete route.
    """
    value = (url or "").strip()
    if not value or value == fallback_image:
        return False
    if value.startswith("/"):
        return False
    return not value.startswith(LOCAL_PREFIXES)


class ObjectStorageClient:
    def __init__(self, api: ApiClient, fallback_image: str = "/img/mensaje-error.png"):
        self.api = api
        self.fallback_image = fallback_image

    def can_delete(self, url: Optional[str]) -> bool:
        return is_deletable_image_url(url, self.fallback_image)

    async def upload(self, path: Path, scope: str, record_key: str, slot: str = "image") -> str:
        """Upload a local file and return its public URL.

        The object path is fixed per ``scope/record_key/slot``, so uploading
        again for the same record overwrites the previous object.

        Raises:
            TransportError: If the file cannot be read or the upload fails
        """
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        try:
            content = path.read_bytes()
        except OSError as e:
            raise TransportError(f"Could not read {path.name}: {e.strerror or e}") from e

        payload = await self.api.request(
            "POST",
            "/api/admin/upload-image",
            data={"scope": scope, "recordKey": record_key, "slot": slot},
            files={"file": (path.name, content, content_type)},
        )
        url = payload.get("publicUrl")
        if not url:
            raise TransportError("The server did not return the image URL.")
        logger.info("Uploaded %s to %s/%s/%s", path.name, scope, record_key, slot)
        return str(url)

    async def delete(self, url: Optional[str]) -> bool:
        """Delete a stored image. Returns False when the URL was skipped."""
        if not self.can_delete(url):
            logger.debug("Skipping image cleanup for %r", url)
            return False
        await self.api.request("POST", "/api/admin/delete-image", json={"publicUrl": url.strip()})
        logger.info("Deleted image %s", url)
        return True
