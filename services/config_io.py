"""Config file discovery and I/O.

The format follows the file extension:
  .json        → JSON
  .yaml / .yml → YAML  (pyyaml)
  .toml        → TOML  (read: stdlib tomllib; write: tomli-w)
Unknown extensions are read and written as JSON.

``load_app_config`` additionally validates the whole document against
``services.config_schema.AppConfig``.
"""
from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
import yaml

from services.config_schema import AppConfig

# Searched in this order inside the data directory.
CONFIG_NAMES = ("config.json", "config.yaml", "config.yml", "config.toml")

# Overrides the data directory holding the config file and logs.
DATA_PATH_ENV = "RELAY_DATA_PATH"

# Config keys whose values are credentials.  Matched as substrings against
# lower-cased key names.
_SENSITIVE_KEY_PATTERNS = ("token", "secret", "password", "webhook_url")


def data_path() -> Path:
    path = os.environ.get(DATA_PATH_ENV, "").strip()
    return Path(path or "data")


def log_path() -> Path:
    return data_path() / "logs"


def find_config(directory: Path) -> Path | None:
    return next((directory / n for n in CONFIG_NAMES if (directory / n).is_file()), None)


def config_format(path: Path) -> str:
    ext = path.suffix.lower()
    if ext in (".yaml", ".yml"):
        return "yaml"
    if ext == ".toml":
        return "toml"
    return "json"


def load_config(path: Path) -> dict[str, Any]:
    """Parse *path* into a plain dict without validating it."""
    fmt = config_format(path)
    if fmt == "toml":
        return tomllib.loads(path.read_text(encoding="utf-8"))
    text = path.read_text(encoding="utf-8")
    if fmt == "yaml":
        return yaml.safe_load(text) or {}
    return json.loads(text)


def load_app_config(path: Path) -> AppConfig:
    """Load and validate *path*; raises ``pydantic.ValidationError`` on bad input."""
    return AppConfig.model_validate(load_config(path))


def dump_config(data: dict[str, Any], fmt: str) -> str:
    if fmt == "yaml":
        return yaml.safe_dump(data, allow_unicode=True, sort_keys=False, default_flow_style=False)
    if fmt == "toml":
        return tomli_w.dumps(data)
    return json.dumps(data, ensure_ascii=False, indent=2) + "\n"


def save_config(data: dict[str, Any], path: Path) -> None:
    """Write *data* to *path*, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_config(data, config_format(path)), encoding="utf-8")


def collect_sensitive(obj: Any, found: set[str] | None = None) -> set[str]:
    """Recursively extract credential-looking string values from a raw config."""
    if found is None:
        found = set()
    if isinstance(obj, dict):
        for k, v in obj.items():
            if isinstance(v, str) and v and any(p in str(k).lower() for p in _SENSITIVE_KEY_PATTERNS):
                found.add(v)
            else:
                collect_sensitive(v, found)
    elif isinstance(obj, list):
        for item in obj:
            collect_sensitive(item, found)
    return found
