# src/landprep/config/loader.py
"""
Layered configuration loading.

Layers, lowest priority first:

1. ``.env`` files (python-dotenv), never overriding variables already set
2. the base YAML file, found on :data:`BASE_CONFIG_PATHS` unless given
3. ``environments/<env>.yaml`` next to the base file, merged key by key
4. ``LANDPREP_<SECTION>_<KEY>`` environment variables
5. ``${VAR}`` references inside string values
"""

import os
import re
from pathlib import Path
from typing import Any, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from landprep.config.exceptions import (
    ConfigurationNotFoundError,
    ConfigurationValidationError,
)
from landprep.config.models import AppConfig

console = Console(stderr=True)

ENV_PREFIX = "LANDPREP"

# Sections that LANDPREP_<SECTION>_<KEY> variables may override
OVERRIDABLE_SECTIONS = ("global", "paths", "fetch", "boundary", "raster", "elevation")

BASE_CONFIG_PATHS = (
    Path("config/landprep_config.yaml"),
    Path("config/config.yaml"),
    Path("~/.config/landprep/config.yaml"),
    Path("/etc/landprep/config.yaml"),
)

_VARIABLE = re.compile(r"\$\{([^}]+)\}")


def dotenv_candidates(environment: str) -> List[Path]:
    """.env files, most specific first."""
    names = [f".env.{environment}.local", f".env.{environment}", ".env.local", ".env"]
    return [Path(n) for n in names] + [Path("config") / n for n in names[1::2]]


def read_yaml(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict, override: dict) -> None:
    """Merge ``override`` into ``base`` in place; keys starting with "_" are metadata."""
    for key, value in override.items():
        if key.startswith("_"):
            continue
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value


def set_by_tokens(section: dict, tokens: List[str], value: str) -> None:
    """
    Assign ``value`` below ``section`` following underscore-split tokens.

    The longest token prefix naming an existing sub-dict is descended into,
    repeatedly; what is left is joined back into the key. ``LOG_LEVEL`` thus
    sets ``log_level`` and ``LOGGING_FILE_ENABLED`` sets ``logging.file.enabled``.
    """
    start = 0
    while True:
        for stop in range(len(tokens) - 1, start, -1):
            name = "_".join(tokens[start:stop])
            if isinstance(section.get(name), dict):
                section, start = section[name], stop
                break
        else:
            section["_".join(tokens[start:])] = value
            return


def substitute(value: Any, where: str = "") -> Any:
    """
    Replace ``${VAR}`` references in every string of a nested structure.

    Raises:
        ConfigurationValidationError: if a referenced variable is not set
    """
    if isinstance(value, dict):
        return {k: substitute(v, k) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute(v, f"{where}[{i}]") for i, v in enumerate(value)]
    if not isinstance(value, str) or "${" not in value:
        return value

    missing = [name for name in _VARIABLE.findall(value) if os.getenv(name) is None]
    if missing:
        raise ConfigurationValidationError(
            f"Missing environment variables for '{where}': {', '.join(missing)}"
        )
    return _VARIABLE.sub(lambda m: os.environ[m.group(1)], value)


class ConfigManager:
    """Loads :class:`AppConfig` and remembers which sources contributed."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.sources: List[str] = []
        self._dotenv_loaded = False

    def load_config(
        self,
        config_path: Optional[Path] = None,
        environment: str = "development",
        load_env_files: bool = True,
    ) -> AppConfig:
        """
        Build the configuration from every layer.

        Raises:
            ConfigurationNotFoundError: if an explicit ``config_path`` is missing
            ConfigurationValidationError: on unset ${VAR} references or invalid values
        """
        self.sources = []
        if config_path is not None:
            config_path = Path(config_path)
            if not config_path.exists():
                raise ConfigurationNotFoundError(f"Configuration file not found: {config_path}")
        else:
            config_path = self.find_base_config()

        if load_env_files and not self._dotenv_loaded:
            for env_file in dotenv_candidates(environment):
                if env_file.exists():
                    load_dotenv(env_file, override=False)
                    self.sources.append(str(env_file))
            self._dotenv_loaded = True

        data = {}
        if config_path is not None:
            data = read_yaml(config_path)
            self.sources.append(str(config_path))

        env_path = self.find_environment_config(config_path, environment)
        if env_path is not None:
            deep_merge(data, read_yaml(env_path))
            self.sources.append(str(env_path))

        overridden = self.apply_env_overrides(data)
        self.sources.extend(overridden)

        try:
            self.config = AppConfig(**substitute(data))
        except ValidationError as e:
            raise ConfigurationValidationError(str(e)) from e

        console.log(f"[blue]Configuration ({environment}):[/blue] {', '.join(self.sources) or 'defaults'}")
        return self.config

    def find_base_config(self) -> Optional[Path]:
        for path in BASE_CONFIG_PATHS:
            path = path.expanduser()
            if path.exists():
                return path
        console.log("[yellow]⚠️  No configuration file found, using built-in defaults[/yellow]")
        return None

    def find_environment_config(
        self, base_path: Optional[Path], environment: str
    ) -> Optional[Path]:
        """``environments/<env>.yaml`` (or ``.yml``, or ``<env>.yaml``) beside the base file."""
        base_dir = base_path.parent if base_path else Path("config")
        for candidate in (
            base_dir / "environments" / f"{environment}.yaml",
            base_dir / "environments" / f"{environment}.yml",
            base_dir / f"{environment}.yaml",
        ):
            if candidate.exists():
                return candidate
        return None

    def apply_env_overrides(self, data: dict) -> List[str]:
        """Apply ``LANDPREP_<SECTION>_<KEY>`` variables; returns the variable names used."""
        used = []
        for section in OVERRIDABLE_SECTIONS:
            prefix = f"{ENV_PREFIX}_{section.upper()}_"
            for name in sorted(os.environ):
                if name.startswith(prefix):
                    tokens = name[len(prefix) :].lower().split("_")
                    set_by_tokens(data.setdefault(section, {}), tokens, os.environ[name])
                    used.append(name)
        return used


_config_manager = ConfigManager()


def load_config(
    config_path: Optional[Path] = None,
    environment: str = "development",
    load_env_files: bool = True,
) -> AppConfig:
    """Load the configuration through the process-wide :class:`ConfigManager`."""
    return _config_manager.load_config(config_path, environment, load_env_files)


def config_sources() -> List[str]:
    """Files and variables that made up the last loaded configuration."""
    return list(_config_manager.sources)
