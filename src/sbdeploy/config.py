"""Settings for sbdeploy.

Settings are read from a YAML file and then overridden by SBDEPLOY_*
environment variables. The file is looked up in this order:

1. the path passed to load_settings()
2. $SBDEPLOY_CONFIG
3. ~/.sbdeploy/config.yml (only if it exists)

Example config.yml:

    ansible_dir: /opt/stackbill/ansible
    inventory_dir: /var/lib/sbdeploy/inventory
    default_user: ubuntu
"""

import logging
import os
import sys
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".sbdeploy"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yml"
ENV_PREFIX = "SBDEPLOY_"

# Target hosts are freshly provisioned and have no known host key yet
DEFAULT_SSH_COMMON_ARGS = "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"

_PATH_FIELDS = {"ansible_dir", "inventory_dir", "key_dir"}
_BOOL_FIELDS = {"use_wsl"}
_INT_FIELDS = {"chunk_size"}


@dataclass
class Settings:
    """Runtime settings for the execution pipeline.

    Attributes:
        ansible_dir: Directory holding playbooks and role directories
        inventory_dir: Scratch directory for per-run inventory files
        key_dir: Temporary directory for per-run private key files
        ansible_playbook: Engine executable name or path
        wsl_command: WSL launcher used when use_wsl is set
        use_wsl: Route the engine through WSL (default: on Windows)
        default_user: Fallback login user for the [all:vars] block
        ssh_common_args: SSH options written to the inventory
        chunk_size: Bytes read from the engine's pipes per read
    """

    ansible_dir: Path = field(default_factory=lambda: Path.cwd() / "ansible")
    inventory_dir: Path = field(default_factory=lambda: DEFAULT_CONFIG_DIR / "inventory")
    key_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    ansible_playbook: str = "ansible-playbook"
    wsl_command: str = "wsl"
    use_wsl: bool = field(default_factory=lambda: sys.platform == "win32")
    default_user: str = "ubuntu"
    ssh_common_args: str = DEFAULT_SSH_COMMON_ARGS
    chunk_size: int = 4096

    def __post_init__(self) -> None:
        """Make path fields absolute; the engine runs with ansible_dir as cwd."""
        for name in _PATH_FIELDS:
            setattr(self, name, Path(getattr(self, name)).expanduser().resolve())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Create settings from a mapping, rejecting unknown keys.

        Raises:
            ConfigError: If the mapping has unknown keys or bad values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}", keys=unknown)
        try:
            return cls(**{k: _coerce(k, v) for k, v in data.items()})
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid settings: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary with paths as strings."""
        return {
            f.name: str(getattr(self, f.name)) if f.name in _PATH_FIELDS else getattr(self, f.name)
            for f in fields(self)
        }


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw settings value (often an env string) to the field type."""
    if name in _BOOL_FIELDS and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off", ""):
            return False
        raise ValueError(f"{name} must be a boolean, got {value!r}")
    if name in _INT_FIELDS:
        return int(value)
    return value


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    """Collect SBDEPLOY_<FIELD> overrides from the environment."""
    overrides = {}
    for f in fields(Settings):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            overrides[f.name] = environ[key]
    return overrides


def _find_config_file(path: str | Path | None) -> Path | None:
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(ENV_PREFIX + "CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    if DEFAULT_CONFIG_FILE.exists():
        return DEFAULT_CONFIG_FILE
    return None


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML and environment overrides.

    Args:
        path: Explicit settings file (optional)

    Returns:
        Settings instance

    Raises:
        ConfigError: If the file is missing, unparsable, not a mapping,
            or has unknown keys

    Example:
        >>> settings = load_settings("deploy.yml")
        >>> settings.inventory_dir
        PosixPath('/var/lib/sbdeploy/inventory')
    """
    data: dict[str, Any] = {}
    config_file = _find_config_file(path)

    if config_file is not None:
        try:
            loaded = yaml.safe_load(config_file.read_text())
        except OSError as e:
            raise ConfigError(f"Cannot read settings file {config_file}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings file {config_file} must contain a mapping")
        data.update(loaded)
        logger.debug(f"Loaded settings from {config_file}")

    data.update(_env_overrides(os.environ))
    return Settings.from_dict(data)
