import json
import logging
import re
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ARTWORKS_KEY = "artworks"
DELETED_IDS_KEY = "deleted_ids"
FAVORITES_KEY = "favorites"
CUSTOM_ORDER_KEY = "custom_order"
DEMO_USER_KEY = "demo_user"
REMOTE_MIRROR_KEY = "remote_mirror"

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStore:
    """JSON key/value store, one file per key.

    Reads never raise: a missing, unreadable or corrupt entry yields the
    caller's default. Writes are plain read-modify-write, so two processes
    sharing a directory can lose each other's updates.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"invalid store key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring corrupt local entry %s: %s", key, exc)
            return default

    def get_list(self, key: str) -> list:
        value = self.get(key, [])
        if not isinstance(value, list):
            logger.warning("Local entry %s is not a list, ignoring", key)
            return []
        return value

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.directory, prefix=f"{key}.", suffix=".tmp", delete=False
        ) as tmp:
            json.dump(value, tmp, default=str)
        Path(tmp.name).replace(path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
