"""Read and write ~/.agentflow/config.json.

The file uses camelCase keys; the schema uses snake_case. Maps whose keys are
user data (event names, header names, framework and tool names) are copied
through untouched.
"""

import json
from pathlib import Path
from typing import Any, Callable

from agentflow.config.schema import Config
from agentflow.utils.helpers import camel_to_snake, snake_to_camel

_OPAQUE_MAPS = frozenset({"event_urls", "headers", "integrations"})


def get_config_path() -> Path:
    return Path.home() / ".agentflow" / "config.json"


def _rekey(data: Any, rename: Callable[[str], str], *, snake_of: Callable[[str], str]) -> Any:
    if isinstance(data, list):
        return [_rekey(item, rename, snake_of=snake_of) for item in data]
    if not isinstance(data, dict):
        return data
    out: dict[str, Any] = {}
    for key, value in data.items():
        opaque = snake_of(key) in _OPAQUE_MAPS and isinstance(value, dict)
        out[rename(key)] = value if opaque else _rekey(value, rename, snake_of=snake_of)
    return out


def convert_keys(data: Any) -> Any:
    """camelCase file form -> snake_case schema form."""
    return _rekey(data, camel_to_snake, snake_of=camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """snake_case schema form -> camelCase file form."""
    return _rekey(data, snake_to_camel, snake_of=lambda key: key)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load config from disk; a missing file yields defaults.

    Raises:
        ValueError: the file exists but is not valid JSON or fails validation.
            The message names the file.
    """
    path = Path(config_path) if config_path else get_config_path()
    if not path.exists():
        return Config()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(raw))
    except ValueError as e:
        raise ValueError(f"Failed to load config from {path}: {e}") from e


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Write config as camelCase JSON, creating parent directories."""
    path = Path(config_path) if config_path else get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = convert_to_camel(config.model_dump(mode="json"))
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path
