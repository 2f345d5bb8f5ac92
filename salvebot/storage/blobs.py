"""Filesystem blob store for raw uploaded files."""

import asyncio
from pathlib import Path


class LocalBlobStore:
    """BlobStore writing each blob to `<root>/documents/<key>`."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root) / "documents"

    def _path(self, key: str) -> Path:
        # Keys are generated document IDs; reject anything path-like
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise ValueError(f"invalid blob key: {key!r}")
        return self._root / key

    async def put_blob(self, key: str, data: bytes, media_type: str) -> None:
        """Store bytes under key."""
        path = self._path(key)
        await asyncio.to_thread(self._write, path, data)

    async def get_blob(self, key: str) -> bytes | None:
        """Fetch bytes or None if missing."""
        path = self._path(key)
        if not path.exists():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def delete_blob(self, key: str) -> None:
        """Delete bytes (no-op if missing)."""
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
