"""Local file storage for data exports."""

import asyncio
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class ExportStorageError(Exception):
    """An export file could not be written."""


class LocalExportStorage:
    """Writes export files under a root directory.

    Keys are relative paths such as ``batch-exports/<job_id>/export.json``.
    """

    def __init__(self, root: str | Path, public_base_url: str = "/exports"):
        self._root = Path(root)
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    async def upload(self, key: str, content: str | bytes) -> str:
        """Write content at key and return its path on disk."""
        path = self._resolve(key)
        data = content.encode("utf-8") if isinstance(content, str) else content
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise ExportStorageError(f"Failed to write export {key}: {e}") from e
        logger.info("export_written", key=key, bytes=len(data))
        return str(path)

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ExportStorageError(f"Export key escapes storage root: {key}")
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
