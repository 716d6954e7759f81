"""YAML-file persistence for the key-value store with atomic writes."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

import yaml

from arena.exceptions import StoreError

from .memory import MemoryStore

logger = logging.getLogger(__name__)


class YamlStore(MemoryStore):
    """Memory store that snapshots each changed collection to ``<dir>/<name>.yaml``.

    Snapshots use a tempfile -> rename pattern so a crash mid-write leaves
    the previous file intact.
    """

    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._load()

    def _path(self, collection: str) -> Path:
        return self.directory / f"{collection}.yaml"

    def _load(self) -> None:
        for path in sorted(self.directory.glob("*.yaml")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.error(f"Corrupted YAML in store file {path}: {e}")
                raise StoreError(f"Corrupted store file: {path}") from e

            collection = path.stem
            for key, record in raw.items():
                self._put(collection, str(key), record)
            logger.debug(f"Loaded {len(raw)} records from {path}")

    def _committed(self, collection: str) -> None:
        path = self._path(collection)
        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=self.directory,
                delete=False,
                suffix=".tmp",
                encoding="utf-8",
            ) as temp_file:
                yaml.safe_dump(
                    self._data[collection],
                    temp_file,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )
                temp_path = Path(temp_file.name)

            shutil.move(str(temp_path), str(path))

        except (OSError, yaml.YAMLError) as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            logger.error(f"Failed to save {collection}: {e}")
            raise StoreError(
                f"Failed to persist collection {collection}",
                context={"collection": collection},
            ) from e
