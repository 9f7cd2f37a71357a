"""Storage tool - durable key/record persistence for jobs, results and crawl data."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _to_jsonable(value) for key, value in obj.items()}
    return obj


class StorageGateway:
    """
    Overwrite-by-id JSON storage laid out as <base_dir>/<record_id>/<category>.json.
    Each save is atomic for a single record; there are no multi-record transactions.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, record_id: str, category: str) -> Path:
        if not record_id or "/" in record_id or record_id in (".", ".."):
            raise ValueError(f"Invalid record id: {record_id!r}")
        return self.base_dir / record_id / f"{category}.json"

    def save(self, obj: Any, record_id: str, category: str) -> None:
        """Persist obj under (record_id, category), replacing any previous value."""
        path = self._path(record_id, category)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = _to_jsonable(obj)

        # Write to a temp file in the same directory, then swap it in
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{category}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                try:
                    os.fsync(f.fileno())
                except OSError:
                    # Some filesystems don't support fsync
                    pass
            os.replace(tmp_name, path)
        except Exception:
            logger.error("Failed to save %s for %s to %s", category, record_id, path, exc_info=True)
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Saved %s for %s to %s", category, record_id, path)

    def load(self, record_id: str, category: str, type_: type[T] | Any) -> Optional[T]:
        """
        Load the record stored under (record_id, category).
        type_ is a pydantic model or anything TypeAdapter understands (e.g. list[Model]).
        Returns None when the record is missing or unreadable.
        """
        path = self._path(record_id, category)
        if not path.exists():
            logger.debug("No %s record for %s", category, record_id)
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(type_, type) and issubclass(type_, BaseModel):
                return type_.model_validate(data)
            return TypeAdapter(type_).validate_python(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to load %s for %s from %s: %s", category, record_id, path, e)
            return None

    def exists(self, record_id: str, category: str) -> bool:
        return self._path(record_id, category).exists()

    def delete(self, record_id: str, category: str) -> bool:
        path = self._path(record_id, category)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_ids(self, category: str) -> list[str]:
        """Ids that have a record in the given category, oldest first."""
        if not self.base_dir.exists():
            return []
        found = [
            p for p in self.base_dir.iterdir()
            if p.is_dir() and (p / f"{category}.json").exists()
        ]
        found.sort(key=lambda p: (p / f"{category}.json").stat().st_mtime)
        return [p.name for p in found]
