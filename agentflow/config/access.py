"""Process-wide config access.

Path resolution order: explicit argument, AGENTFLOW_CONFIG env var, then
~/.agentflow/config.json. Loaded configs are cached per resolved path.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from agentflow.config.loader import get_config_path, load_config
from agentflow.config.schema import Config

CONFIG_PATH_ENV = "AGENTFLOW_CONFIG"

_lock = threading.RLock()
_configs: dict[Path, Config] = {}


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    raw = config_path or os.environ.get(CONFIG_PATH_ENV) or get_config_path()
    return Path(raw).expanduser().resolve()


def get_config(*, config_path: Path | str | None = None, force_reload: bool = False) -> Config:
    path = resolve_config_path(config_path)
    with _lock:
        config = _configs.get(path)
        if config is None or force_reload:
            config = load_config(path)
            _configs[path] = config
        return config


def clear_config_cache(*, config_path: Path | str | None = None) -> None:
    """Drop one cached config, or all of them when no path is given."""
    with _lock:
        if config_path is None:
            _configs.clear()
        else:
            _configs.pop(resolve_config_path(config_path), None)
