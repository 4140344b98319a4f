"""On-device persistence for the application state."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

STORAGE_FORMAT_VERSION = 1


class LocalStateStorage:
    """
    JSON file holding the last persisted state.

    Layout: ``{"version": 1, "state": {...}}``. Writes go to a temp file in the
    same directory and are renamed into place.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def read(self) -> Optional[Dict[str, Any]]:
        """Return the persisted state, or None when nothing usable is stored."""
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return None
        if not text.strip():
            return None
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable state file %s", self.path)
            return None
        if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
            logger.warning("Ignoring state file %s with unexpected layout", self.path)
            return None
        return payload["state"]

    def write(self, state: Dict[str, Any]) -> None:
        content = json.dumps(
            {"version": STORAGE_FORMAT_VERSION, "state": state},
            indent=2,
            ensure_ascii=False,
            default=str,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


def default_storage() -> LocalStateStorage:
    """Storage at the configured `sync_state_path`."""
    return LocalStateStorage(settings.sync_state_path)
