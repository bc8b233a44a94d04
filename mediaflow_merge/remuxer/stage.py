"""
In-memory working filesystem shared with the merge engine.

Entries are addressed by fixed logical names (``input.mp4``, ``output.mp4``
...). The engine only ever sees what has been written here: before running
FFmpeg it materialises the required entries into a private scratch
directory, and afterwards it collects the output entry back. Both of those
do blocking file I/O; async callers run them in an executor.
"""

import logging
from pathlib import Path
from typing import Iterable

from mediaflow_merge.merge.errors import NotFoundError
from mediaflow_merge.merge.models import StagedAsset

logger = logging.getLogger(__name__)


class VirtualFileStage:
    def __init__(self) -> None:
        self._entries: dict[str, StagedAsset] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return sorted(self._entries)

    def exists(self, name: str) -> bool:
        return name in self._entries

    def write(self, name: str, data: bytes) -> None:
        """Store or overwrite ``name``. The buffer is copied into an immutable ``bytes``."""
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid stage entry name: {name!r}")
        self._entries[name] = StagedAsset(logical_name=name, data=bytes(data))
        logger.debug("[stage] Wrote %s (%d bytes)", name, len(data))

    def read(self, name: str) -> bytes:
        try:
            return self._entries[name].data
        except KeyError:
            raise NotFoundError(name) from None

    def remove(self, name: str) -> bool:
        """Remove ``name`` if present. Returns whether something was removed."""
        removed = self._entries.pop(name, None) is not None
        if removed:
            logger.debug("[stage] Removed %s", name)
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def materialize(self, directory: Path, names: Iterable[str]) -> None:
        """Write the given entries as real files under ``directory``."""
        for name in names:
            (directory / name).write_bytes(self.read(name))

    def collect(self, directory: Path, name: str) -> None:
        """Load ``directory/name`` back into the stage under the same logical name."""
        path = directory / name
        if not path.is_file():
            raise NotFoundError(name)
        self.write(name, path.read_bytes())
