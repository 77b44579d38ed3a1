"""Durable local copy of the last snapshot, used when the store is unreachable."""

import asyncio
import json
from pathlib import Path

import structlog

from visa_tracker.config import get_settings
from visa_tracker.snapshot import Snapshot

logger = structlog.get_logger(__name__)


class SnapshotCache:
    """Single-slot JSON file cache; the last saved snapshot wins."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else get_settings().cache_path

    def _write(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def _read(self) -> Snapshot | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Snapshot.from_dict(data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("snapshot_cache_unreadable", path=str(self.path), error=str(e))
            return None

    async def save(self, snapshot: Snapshot) -> None:
        await asyncio.to_thread(self._write, snapshot)
        logger.debug(
            "snapshot_cached",
            path=str(self.path),
            employees=len(snapshot.employees),
            tasks=len(snapshot.tasks),
        )

    async def load(self) -> Snapshot | None:
        return await asyncio.to_thread(self._read)
