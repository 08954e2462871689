"""
Settings discovery for devshell.

Settings are merged from three layers, later layers winning:

1. Built-in defaults
2. YAML config file (DEVSHELL_CONFIG, or ~/.config/devshell/config.yaml)
3. DEVSHELL_* environment variables (a .env file in the working
   directory is loaded first)

Usage:
    from devshell.config import get_settings

    settings = get_settings()
    print(settings.cas_dir)
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger("devshell.config")

CONFIG_ENV = "DEVSHELL_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "devshell" / "config.yaml"
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "devshell"

# Settings that hold filesystem locations
_PATH_FIELDS = {"cache_dir", "cas_dir", "gc_root_dir"}


class ConfigError(Exception):
    """Raised when the config file cannot be read or holds unknown keys."""
    pass


@dataclass
class Settings:
    """Resolved devshell settings."""

    cache_dir: Path = DEFAULT_CACHE_DIR
    cas_dir: Optional[Path] = None
    gc_root_dir: Optional[Path] = None
    nix_instantiate: str = "nix-instantiate"
    nix_build: str = "nix-build"
    nix_env: str = "nix-env"
    log_level: str = "WARNING"

    def __post_init__(self):
        self.cache_dir = Path(self.cache_dir).expanduser()
        if self.cas_dir is None:
            self.cas_dir = self.cache_dir / "cas"
        if self.gc_root_dir is None:
            self.gc_root_dir = self.cache_dir / "gc_roots"
        self.cas_dir = Path(self.cas_dir).expanduser()
        self.gc_root_dir = Path(self.gc_root_dir).expanduser()

    @classmethod
    def from_file(cls, path: Path, overrides: Optional[dict] = None) -> "Settings":
        """
        Load settings from a YAML file.

        Args:
            path: Config file. A missing file yields the defaults.
            overrides: Values applied on top of the file contents

        Raises:
            ConfigError: If the file is not valid YAML, is not a mapping,
                or contains unknown keys
        """
        data = {}
        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Could not read config file {path}: {e}") from e

            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")

            known = {f.name for f in fields(cls)}
            unknown = sorted(set(data) - known)
            if unknown:
                raise ConfigError(
                    f"Unknown keys in {path}: {', '.join(unknown)}. "
                    f"Known keys: {', '.join(sorted(known))}"
                )
            logger.debug(f"Loaded config from {path}")

        data.update(overrides or {})
        return cls(**data)

    @classmethod
    def discover(cls) -> "Settings":
        """
        Discover settings from the config file and the environment.

        Environment variables are named DEVSHELL_<FIELD>, e.g.
        DEVSHELL_NIX_ENV=/run/current-system/sw/bin/nix-env.
        """
        load_dotenv(Path.cwd() / ".env")

        if os.environ.get(CONFIG_ENV):
            config_path = Path(os.environ[CONFIG_ENV]).expanduser()
        else:
            config_path = DEFAULT_CONFIG_PATH

        overrides = {}
        for f in fields(cls):
            value = os.environ.get(f"DEVSHELL_{f.name.upper()}")
            if value:
                overrides[f.name] = value

        return cls.from_file(config_path, overrides)

    def to_dict(self) -> dict:
        """Return a JSON-friendly dict representation."""
        data = asdict(self)
        for name in _PATH_FIELDS:
            data[name] = str(data[name])
        return data


# Global singleton for convenience
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global Settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings.discover()
    return _settings


def reset_settings():
    """Reset the global settings (useful for testing)."""
    global _settings
    _settings = None
