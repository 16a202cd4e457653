"""Directory-backed configuration source.

Each named configuration lives in ``<root>/<name>.yml``. Writes go through a
temporary file and ``os.replace`` so readers never observe a partial file.
"""

from __future__ import annotations

import asyncio
import copy
import os
from pathlib import Path

import yaml

from pugbot.config.loader import expand_env_vars, read_yaml
from pugbot.errors import ConfigurationError
from pugbot.logging_config import get_logger

logger = get_logger(__name__)

_NAME_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789_-")


def _validate_name(name: str) -> str:
    normalized = name.strip().lower()
    if not normalized or not set(normalized) <= _NAME_CHARS:
        raise ConfigurationError(f"Invalid config name: {name!r}")
    return normalized


def deep_merge(base: dict, updates: dict) -> dict:
    """Return ``base`` with ``updates`` merged in recursively."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class YamlConfigStore:
    """ConfigSource implementation over a directory of YAML files."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._lock = asyncio.Lock()
        self._schema_snapshots: dict[tuple[str, str], dict] = {}

    def path_for(self, name: str) -> Path:
        return self.root / f"{_validate_name(name)}.yml"

    async def get_config(self, name: str) -> dict | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        return expand_env_vars(read_yaml(path))  # type: ignore[return-value]

    async def set_config(self, name: str, data: dict) -> None:
        async with self._lock:
            self._write(self.path_for(name), data)
        logger.info("config replaced", name=name)

    async def update_config(self, name: str, updates: dict) -> dict:
        """Merge ``updates`` into the stored config and return the result."""
        async with self._lock:
            path = self.path_for(name)
            current = read_yaml(path) if path.exists() else {}
            merged = deep_merge(current, updates)
            self._write(path, merged)
        logger.info("config updated", name=name, keys=sorted(updates.keys()))
        return merged

    def _write(self, path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(data, handle, sort_keys=False)
            os.replace(temp_path, path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise ConfigurationError(f"Failed to write config {path}: {e}") from e

    async def remove_fields(self, name: str, fields: list[str]) -> dict:
        async with self._lock:
            path = self.path_for(name)
            current = read_yaml(path) if path.exists() else {}
            for field in fields:
                current.pop(field, None)
            self._write(path, current)
        logger.info("config fields removed", name=name, fields=list(fields))
        return current

    async def transform_schema(self, target: str, from_version: str, to_version: str, transforms: list[dict]) -> None:
        """Apply key-level transforms and stamp ``schema_version``.

        Supported ops: ``rename`` (``from``/``to``), ``set`` (``key``/``value``)
        and ``remove`` (``key``). The pre-transform document is kept so
        ``revert_schema`` can restore it.
        """
        async with self._lock:
            path = self.path_for(target)
            current = read_yaml(path) if path.exists() else {}
            stored_version = current.get("schema_version")
            if stored_version is not None and str(stored_version) != str(from_version):
                raise ConfigurationError(
                    f"Schema of {target!r} is at {stored_version}, expected {from_version} before transform"
                )
            snapshot = copy.deepcopy(current)
            for transform in transforms or []:
                _apply_transform(current, transform)
            current["schema_version"] = to_version
            self._write(path, current)
            self._schema_snapshots[(target, str(to_version))] = snapshot
        logger.info("schema transformed", target=target, from_version=from_version, to_version=to_version)

    async def revert_schema(self, target: str, from_version: str, to_version: str) -> None:
        async with self._lock:
            snapshot = self._schema_snapshots.pop((target, str(from_version)), None)
            if snapshot is None:
                raise ConfigurationError(f"No schema snapshot for {target!r} at {from_version}")
            self._write(self.path_for(target), snapshot)
        logger.info("schema reverted", target=target, from_version=from_version, to_version=to_version)


def _apply_transform(document: dict, transform: dict) -> None:
    op = transform.get("op")
    if op == "rename":
        source, dest = transform["from"], transform["to"]
        if source in document:
            document[dest] = document.pop(source)
    elif op == "set":
        document[transform["key"]] = copy.deepcopy(transform.get("value"))
    elif op == "remove":
        document.pop(transform["key"], None)
    else:
        raise ConfigurationError(f"Unknown schema transform op: {op!r}")
