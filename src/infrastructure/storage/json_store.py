"""Small JSON-file document store shared by the history and profile repositories."""
import json
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator


class JsonFileStore:
    """
    Keeps one JSON object in a file and serialises read-modify-write cycles.

    The lock only covers this process; writers in other processes resolve
    last-write-wins.
    """

    def __init__(self, storage_path: str):
        self.storage_path = storage_path
        self._lock = threading.RLock()
        self._ensure_storage_exists()

    def _ensure_storage_exists(self) -> None:
        """Create storage directory and file if they don't exist."""
        storage_dir = os.path.dirname(self.storage_path)
        if storage_dir and not os.path.exists(storage_dir):
            os.makedirs(storage_dir, exist_ok=True)

        if not os.path.exists(self.storage_path) or os.path.getsize(self.storage_path) == 0:
            self._save({})

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.storage_path, "r") as f:
                return json.load(f)
        except FileNotFoundError:
            return {}

    def _save(self, data: Dict[str, Any]) -> None:
        tmp_path = self.storage_path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.storage_path)

    def read(self) -> Dict[str, Any]:
        with self._lock:
            return self._load()

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """Yield the stored object for mutation; it is written back when the block exits cleanly."""
        with self._lock:
            data = self._load()
            yield data
            self._save(data)
