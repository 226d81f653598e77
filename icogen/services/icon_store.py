from __future__ import annotations

import re
import time
from logging import getLogger
from pathlib import Path
from typing import Tuple
from uuid import uuid4

logger = getLogger(__name__)

_ICON_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class IconNotFoundError(KeyError):
    """Raised when an icon id cannot be resolved."""


class IconStore:
    """Directory of written ``.ico`` files keyed by a random hex id."""

    def __init__(self, output_dir: Path, ttl_seconds: int):
        self.output_dir = Path(output_dir)
        self.ttl_seconds = ttl_seconds
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def new_destination(self) -> Tuple[str, Path]:
        self._evict_expired()
        icon_id = uuid4().hex
        return icon_id, self._path_for(icon_id)

    def resolve(self, icon_id: str) -> Path:
        self._evict_expired()
        if not _ICON_ID_PATTERN.match(icon_id):
            raise IconNotFoundError(icon_id)
        path = self._path_for(icon_id)
        if not path.is_file():
            raise IconNotFoundError(icon_id)
        return path

    def discard(self, icon_id: str) -> None:
        self._path_for(icon_id).unlink(missing_ok=True)

    def _path_for(self, icon_id: str) -> Path:
        return self.output_dir / f"{icon_id}.ico"

    def _evict_expired(self) -> None:
        now = time.time()
        for path in self.output_dir.glob("*.ico"):
            try:
                expired = now - path.stat().st_mtime > self.ttl_seconds
            except FileNotFoundError:
                continue
            if expired:
                path.unlink(missing_ok=True)
                logger.info("Evicted expired icon", extra={"icon_id": path.stem})
