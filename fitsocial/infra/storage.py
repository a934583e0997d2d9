"""
Blob storage for message media.

Files land under MEDIA_ROOT/<bucket>/<path> and are served by the app at
MEDIA_BASE_URL/<bucket>/<path>.
"""

import asyncio
from pathlib import Path, PurePosixPath

from fitsocial.core.config import settings
from fitsocial.core.errors import ValidationError
from fitsocial.core.logging import get_logger

logger = get_logger(__name__)


class LocalBlobStorage:
    def __init__(self, root: str = settings.media_root, base_url: str = settings.media_base_url):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Path:
        relative = PurePosixPath(bucket) / PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValidationError(f"Invalid blob path: {path}")
        return self.root.joinpath(*relative.parts)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/{bucket}/{path}"

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        """Write the blob fully, then return its public URL."""
        target = self._resolve(bucket, path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info(f"Stored blob {bucket}/{path} ({len(data)} bytes)")
        return self.public_url(bucket, path)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
