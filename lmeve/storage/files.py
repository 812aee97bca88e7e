"""File-backed JSON storage

Settings, the site data store and the status/SDE caches all live as JSON
documents in one storage directory. Writes go through a temp file that is
atomically moved into place, and ``update_json`` holds a per-document lock
for the whole read-modify-write so concurrent saves cannot drop each other.
"""

import json
import logging
import os
import tempfile
import threading
import time
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from lmeve.config import settings
from lmeve.exceptions import StorageException

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
SITE_DATA_FILE = "site-data.json"
STATUS_CACHE_FILE = "system-status.json"
SDE_CACHE_FILE = "sde-cache.json"
DATA_DIR = "data"


def candidate_storage_dirs(preferred: Optional[str] = None, env_dir: Optional[str] = None) -> List[Path]:
    """
    Ordered storage directory candidates

    Args:
        preferred: Preferred directory, defaults to settings.STORAGE_DIR
        env_dir: Directory from the LMEVE_STORAGE_DIR environment variable

    Returns:
        Candidate paths, preferred first and system temp last
    """
    candidates = [Path(preferred or settings.STORAGE_DIR)]
    env_value = env_dir if env_dir is not None else settings.LMEVE_STORAGE_DIR
    if env_value:
        candidates.append(Path(env_value))
    candidates.append(Path(tempfile.gettempdir()) / "lmeve-storage")
    return candidates


def _usable(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return path.is_dir() and os.access(path, os.W_OK)


def resolve_storage_dir(candidates: Optional[List[Path]] = None) -> Optional[Path]:
    """Return the first candidate that exists or can be created and is writable"""
    for path in candidates if candidates is not None else candidate_storage_dirs():
        if _usable(path):
            return path
        logger.warning(f"Storage directory not usable: {path}")
    return None


class FileStorage:
    """JSON document store rooted at one directory"""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def path(self, name: str) -> Path:
        return self.directory / name

    def _lock(self, name: str) -> threading.RLock:
        with self._locks_guard:
            if name not in self._locks:
                self._locks[name] = threading.RLock()
            return self._locks[name]

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def age_seconds(self, name: str) -> Optional[float]:
        """Seconds since the document was last written, None when absent"""
        try:
            return time.time() - self.path(name).stat().st_mtime
        except OSError:
            return None

    def read_text(self, name: str) -> Optional[str]:
        try:
            return self.path(name).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageException(f"Failed to read {name}", {"detail": str(e)})

    def write_text(self, name: str, content: str) -> None:
        target = self.path(name)
        with self._lock(name):
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        handle.write(content)
                    os.replace(tmp_name, target)
                finally:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
            except OSError as e:
                raise StorageException(
                    f"Failed to write {name}",
                    {
                        "detail": str(e),
                        "storeDir": str(self.directory),
                        "dirIsWritable": os.access(self.directory, os.W_OK),
                    },
                )

    def read_json(self, name: str) -> Any:
        """
        Load a JSON document

        Returns:
            Parsed document, or None when the file does not exist

        Raises:
            StorageException: If the file exists but is not valid JSON
        """
        raw = self.read_text(name)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            raise StorageException(f"Corrupt {name}")

    def write_json(self, name: str, data: Any) -> None:
        self.write_text(name, json.dumps(data, indent=4))

    def update_json(self, name: str, mutate: Callable[[Any], Any], replace_corrupt: bool = False) -> Any:
        """
        Atomic read-modify-write of a JSON document

        Args:
            name: Document name
            mutate: Receives the current document (None if absent) and returns the new one
            replace_corrupt: Treat an unreadable document as absent instead of failing

        Returns:
            The document that was written
        """
        with self._lock(name):
            try:
                current = self.read_json(name)
            except StorageException as e:
                if not replace_corrupt:
                    raise
                logger.warning(f"Replacing unreadable {name}: {e.message}")
                current = None
            updated = mutate(current)
            self.write_json(name, updated)
            return updated


@lru_cache
def get_storage() -> FileStorage:
    """Storage dependency"""
    directory = resolve_storage_dir()
    if directory is None:
        raise StorageException("No writable storage directory available")
    logger.info(f"Using storage directory: {directory}")
    return FileStorage(directory)
