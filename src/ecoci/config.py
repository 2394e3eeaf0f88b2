"""Runner configuration loader.

Supports .ecoci/config.toml or .ecoci/config.json next to the workspace
root for customizing the workspace location and the command environment.
"""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ecoci.errors import ConfigError

DEFAULT_NODE_MAX_OLD_SPACE_MB = 6144  # GitHub hosted runners have 7GB, stay below


@dataclass(frozen=True)
class EcoConfig:
    """Settings applied to every orchestration context."""

    workspace: str = "workspace"
    env: dict[str, str] = field(default_factory=dict)
    node_max_old_space_mb: int = DEFAULT_NODE_MAX_OLD_SPACE_MB

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EcoConfig:
        """Parse and validate config dict into EcoConfig."""
        workspace = data.get("workspace", "workspace")
        if not isinstance(workspace, str) or not workspace.strip():
            raise ValueError("workspace must be a non-empty string")

        raw_env = data.get("env", {})
        if not isinstance(raw_env, dict):
            raise ValueError("env must be a table of strings")
        env = {str(key): str(value) for key, value in raw_env.items()}

        memory = data.get("node_max_old_space_mb", DEFAULT_NODE_MAX_OLD_SPACE_MB)
        if isinstance(memory, bool) or not isinstance(memory, int) or memory <= 0:
            raise ValueError("node_max_old_space_mb must be a positive integer")

        return cls(workspace=workspace, env=env, node_max_old_space_mb=memory)


def load_config(root: Path) -> EcoConfig:
    """Load runner configuration from .ecoci/config.toml or .ecoci/config.json.

    Priority order:
    1. .ecoci/config.toml (preferred)
    2. .ecoci/config.json (fallback)
    3. built-in defaults

    Raises:
        ConfigError: If a config file is malformed or invalid
    """
    config_dir = root / ".ecoci"

    toml_path = config_dir / "config.toml"
    if toml_path.exists():
        try:
            with open(toml_path, "rb") as f:
                data = tomllib.load(f)
            return EcoConfig.from_dict(data)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Malformed TOML config at {toml_path}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config structure in {toml_path}: {e}") from e

    json_path = config_dir / "config.json"
    if json_path.exists():
        try:
            with open(json_path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError("top-level JSON value must be an object")
            return EcoConfig.from_dict(data)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed JSON config at {json_path}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config structure in {json_path}: {e}") from e

    return EcoConfig()
