"""Client-side key-value storage for durable markers.

The generation engine persists the id of an in-flight generation here so a
restarted process can re-attach to it. Storage failures never break the
caller: reads fall back to ``None`` and writes are logged and dropped.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Optional, Protocol

from flashdeck.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store; the default for tests and one-shot runs."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Flat JSON object on disk, rewritten on every change."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        try:
            with self._lock:
                return self._read().get(key)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read %s from %s: %s", key, self.path, e)
            return None

    def set(self, key: str, value: str) -> None:
        try:
            with self._lock:
                data = self._read()
                data[key] = value
                self._write(data)
        except (OSError, ValueError) as e:
            logger.warning("Failed to store %s in %s: %s", key, self.path, e)

    def remove(self, key: str) -> None:
        try:
            with self._lock:
                data = self._read()
                if key not in data:
                    return
                del data[key]
                self._write(data)
        except (OSError, ValueError) as e:
            logger.warning("Failed to remove %s from %s: %s", key, self.path, e)
