"""Persistence of rendered manifests.

Rendered Chart records are written to a manifests directory from where they
are applied to the record store by a separate mechanism.
"""

from abc import ABC, abstractmethod
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from .exceptions import ManifestSaveException

__all__ = ["ManifestSaver", "DirectoryManifestSaver", "InMemoryManifestSaver"]

_LOGGER = logging.getLogger(__name__)


class ManifestSaver(ABC):
    """Persists a rendered manifest under a filename."""

    @abstractmethod
    async def save(self, filename: str, content: bytes) -> None:
        """Persist the content, replacing any previous content."""


class DirectoryManifestSaver(ManifestSaver):
    """Writes manifests into a directory."""

    def __init__(self, manifests_dir: Path) -> None:
        """Initialize DirectoryManifestSaver."""
        self._dir = manifests_dir

    async def save(self, filename: str, content: bytes) -> None:
        """Write the manifest atomically, only if the content changed."""
        if Path(filename).name != filename:
            raise ManifestSaveException(f"Invalid manifest filename {filename!r}")
        path = self._dir / filename
        try:
            await aiofiles.os.makedirs(self._dir, exist_ok=True)
            if await aiofiles.os.path.exists(path):
                async with aiofiles.open(path, mode="rb") as existing:
                    if await existing.read() == content:
                        _LOGGER.debug("Manifest %s unchanged", path)
                        return
            tmp_path = path.with_name(f".{filename}.tmp")
            async with aiofiles.open(tmp_path, mode="wb") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as err:
            raise ManifestSaveException(
                f"Unable to write manifest {path}: {err}"
            ) from err
        _LOGGER.debug("Wrote manifest %s", path)


class InMemoryManifestSaver(ManifestSaver):
    """Keeps manifests in memory, keyed by filename."""

    def __init__(self) -> None:
        """Initialize InMemoryManifestSaver."""
        self.manifests: dict[str, bytes] = {}

    async def save(self, filename: str, content: bytes) -> None:
        """Store the manifest content."""
        self.manifests[filename] = content
