"""Durable key-value scratch space backed by a single JSON file.

Holds the persisted auth session and a profile stashed during sign-up until
the first successful post-login load.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from core.logger import get_logger

logger = get_logger("services.local_store")

SESSION_STORAGE_KEY = "calorie-tracker-auth"
PENDING_PROFILE_KEY = "pending_profile_data"


class LocalStore:
    """Tiny persistent dict. Pass `path=None` for a process-local store."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Local storage at %s is unreadable; starting empty", self.path)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def __contains__(self, key: str) -> bool:
        return key in self._data
