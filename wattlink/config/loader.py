"""Config file IO, content hashing and dotted-key access for the CLI."""

import hashlib
import sqlite3
from pathlib import Path
from typing import Any

import yaml

from wattlink.config.schema import WattlinkConfig

_TRUTHY = {"1", "true", "yes", "on"}


def load_config(path: str | Path) -> WattlinkConfig:
    """Read a YAML config. Missing or empty files give the defaults."""
    path = Path(path)
    raw = yaml.safe_load(path.read_text()) if path.exists() else None
    return WattlinkConfig.model_validate(raw or {})


def save_config(config: WattlinkConfig, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False))


def config_hash(config: WattlinkConfig) -> str:
    """First 16 hex chars of the SHA256 of the config's compact JSON."""
    return hashlib.sha256(config.model_dump_json().encode()).hexdigest()[:16]


def snapshot_config(config: WattlinkConfig, conn: sqlite3.Connection) -> str:
    """Record the config under its hash so passes can point at it."""
    h = config_hash(config)
    conn.execute(
        "INSERT OR IGNORE INTO config_snapshots (config_hash, config_json, created_at) "
        "VALUES (?, ?, CURRENT_TIMESTAMP)",
        (h, config.model_dump_json()),
    )
    conn.commit()
    return h


def _parent_of(data: dict, dotted_key: str) -> tuple[dict, str]:
    *path, leaf = dotted_key.split(".")
    node: Any = data
    for part in path:
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Config key not found: {dotted_key}")
        node = node[part]
    if not isinstance(node, dict) or leaf not in node:
        raise KeyError(f"Config key not found: {dotted_key}")
    return node, leaf


def get_config_value(config: WattlinkConfig, dotted_key: str) -> Any:
    """Look up e.g. ``resolver.poll_interval_seconds``."""
    node, leaf = _parent_of(config.model_dump(), dotted_key)
    return node[leaf]


def _coerce(current: Any, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    # bool before int: bool is an int subclass
    if isinstance(current, bool):
        return value.strip().lower() in _TRUTHY
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value


def set_config_value(config: WattlinkConfig, dotted_key: str, value: Any) -> WattlinkConfig:
    """Return a re-validated copy with one key replaced. The input is untouched."""
    data = config.model_dump(mode="json")
    node, leaf = _parent_of(data, dotted_key)
    node[leaf] = _coerce(node[leaf], value)
    return WattlinkConfig.model_validate(data)
