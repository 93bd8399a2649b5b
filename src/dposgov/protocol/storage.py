"""
dposgov/protocol/storage.py

Persistence for governance state.

Two-tier storage:
1. Memory cache - Fast access
2. Local disk - Crash recovery

GovernanceStorage snapshots the whole ChainState (voters, producers,
global counters) plus the last accepted schedule as JSON documents, and
restores them in place on node start.
"""

import json
import time
import logging
import hashlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from ..config import DEFAULT_STORAGE_DIR
from .election import ProposedSchedule
from .state import ChainState

logger = logging.getLogger("dposgov.protocol.storage")


# ============================================================================
# CONSTANTS
# ============================================================================

STORAGE_PREFIX = "dposgov:"
STATE_KEY = STORAGE_PREFIX + "state"
SCHEDULE_KEY = STORAGE_PREFIX + "schedule"

# Bumped when the snapshot layout changes
SNAPSHOT_VERSION = 1


# ============================================================================
# STORAGE BACKENDS
# ============================================================================

class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Get a value by key."""

    @abstractmethod
    async def put(self, key: str, value: bytes) -> bool:
        """Store a value."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys with optional prefix filter."""


class MemoryBackend(StorageBackend):
    """In-memory storage backend."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]


class FileBackend(StorageBackend):
    """Local file storage backend."""

    def __init__(self, storage_dir: Optional[Path] = None):
        self.storage_dir = Path(storage_dir or DEFAULT_STORAGE_DIR)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._metadata_file = self.storage_dir / "metadata.json"
        self._metadata: Dict[str, dict] = self._load_metadata()

    def _load_metadata(self) -> Dict[str, dict]:
        if self._metadata_file.exists():
            try:
                with open(self._metadata_file, "r") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load metadata: {e}")
        return {}

    def _save_metadata(self) -> None:
        with open(self._metadata_file, "w") as f:
            json.dump(self._metadata, f)

    def _key_to_path(self, key: str) -> Path:
        """Convert key to file path."""
        hash_name = hashlib.sha256(key.encode()).hexdigest()[:32]
        return self.storage_dir / f"{hash_name}.dat"

    async def get(self, key: str) -> Optional[bytes]:
        if key not in self._metadata:
            return None
        path = self._key_to_path(key)
        if not path.exists():
            logger.warning(f"Metadata lists {key} but {path.name} is missing")
            return None
        return path.read_bytes()

    async def put(self, key: str, value: bytes) -> bool:
        path = self._key_to_path(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            tmp_path.write_bytes(value)
            tmp_path.replace(path)
            self._metadata[key] = {
                "path": str(path),
                "updated_at": time.time(),
                "size": len(value),
            }
            self._save_metadata()
            return True
        except OSError as e:
            logger.error(f"Failed to write {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if key not in self._metadata:
            return False
        path = self._key_to_path(key)
        try:
            if path.exists():
                path.unlink()
            del self._metadata[key]
            self._save_metadata()
            return True
        except OSError as e:
            logger.error(f"Failed to delete {key}: {e}")
            return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._metadata if key.startswith(prefix)]


# ============================================================================
# GOVERNANCE STORAGE
# ============================================================================

class GovernanceStorage:
    """
    Saves and restores governance state.

    Read order: Memory -> Disk. Writes go to both.

    Usage:
        storage = GovernanceStorage(storage_dir=config.get_storage_dir())
        await storage.load_state(contract.state)
        ...
        await storage.save_state(contract.state)
    """

    def __init__(self, storage_dir: Optional[Path] = None, persist: bool = True):
        """
        Args:
            storage_dir: Directory for the disk tier
            persist: False keeps everything in memory only
        """
        self._memory = MemoryBackend()
        self._disk: Optional[FileBackend] = FileBackend(storage_dir) if persist else None

    def _backends(self) -> List[StorageBackend]:
        return [b for b in (self._memory, self._disk) if b is not None]

    async def _put(self, key: str, document: dict) -> bool:
        data = json.dumps(document, sort_keys=True).encode()
        ok = True
        for backend in self._backends():
            ok = await backend.put(key, data) and ok
        return ok

    async def _get(self, key: str) -> Optional[dict]:
        for backend in self._backends():
            data = await backend.get(key)
            if data is not None:
                if backend is not self._memory:
                    await self._memory.put(key, data)
                return json.loads(data.decode())
        return None

    async def save_state(self, state: ChainState) -> bool:
        """Snapshot the full chain state."""
        document = {
            "version": SNAPSHOT_VERSION,
            "saved_at": int(time.time()),
            "state": state.to_dict(),
        }
        ok = await self._put(STATE_KEY, document)
        if ok:
            logger.debug(
                f"Saved state: {len(state.producers)} producer(s), {len(state.voters)} voter(s)"
            )
        else:
            logger.error("Failed to persist governance state")
        return ok

    async def load_state(self, state: ChainState) -> bool:
        """
        Restore the last snapshot into `state` in place.

        Returns:
            False if no snapshot exists
        """
        document = await self._get(STATE_KEY)
        if document is None:
            logger.info("No saved governance state")
            return False
        version = document.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported state snapshot version: {version}")
        state.load(document["state"])
        logger.info(
            f"Loaded state: {len(state.producers)} producer(s), {len(state.voters)} voter(s)"
        )
        return True

    async def save_schedule(self, schedule: ProposedSchedule) -> bool:
        return await self._put(SCHEDULE_KEY, schedule.to_dict())

    async def load_schedule(self) -> Optional[ProposedSchedule]:
        document = await self._get(SCHEDULE_KEY)
        if document is None:
            return None
        return ProposedSchedule.from_dict(document)

    async def clear(self) -> None:
        for backend in self._backends():
            for key in await backend.list_keys(STORAGE_PREFIX):
                await backend.delete(key)
