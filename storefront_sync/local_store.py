"""
Local persistence for a collection, one JSON file per collection kind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Union

from shared.errors import StorefrontException
from shared.logging import get_logger


class LocalPersistenceError(StorefrontException):
    """The local copy could not be written; the change would otherwise be lost."""

    def __init__(self, path: Path, error: Exception):
        super().__init__(
            "LOCAL_PERSISTENCE_ERROR",
            f"Failed to persist local collection to {path}",
            details={"error": str(error)},
        )


class LocalCollectionStore:

    def __init__(self, directory: Union[str, Path], kind: str):
        self.path = Path(directory) / f"{kind}.json"
        self.logger = get_logger("storefront_sync.local_store")

    def load(self) -> List[Dict[str, Any]]:
        """Read the stored items; a missing or corrupt file reads as empty."""
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            self.logger.warning("Unreadable local collection, starting empty", path=str(self.path), error=str(e))
            return []

        if not isinstance(data, list):
            self.logger.warning("Local collection is not a list, starting empty", path=str(self.path))
            return []
        return [item for item in data if isinstance(item, dict) and item.get("id")]

    def save(self, items: List[Dict[str, Any]]) -> None:
        """Atomically replace the stored items. Raises ``LocalPersistenceError``."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.stem}-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(items, handle)
                os.replace(tmp_path, self.path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            self.logger.error("Failed to save local collection", path=str(self.path), error=str(e))
            raise LocalPersistenceError(self.path, e) from e

    def clear(self) -> None:
        self.save([])
