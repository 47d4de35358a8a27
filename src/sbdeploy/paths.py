"""Path resolution for playbooks, roles and the WSL bridge."""

import ntpath
import re
from pathlib import Path, PurePath

from .config import Settings
from .run_kinds import RunKindStrategy

_DRIVE_RE = re.compile(r"^([A-Za-z]):")


def to_wsl_path(path: str | PurePath) -> str:
    """Convert a Windows path to the path WSL mounts it under.

    The result is not shell-quoted; callers quote it when building a
    command line.

    Example:
        >>> to_wsl_path(r"C:\\deploy center\\ansible\\mysql")
        '/mnt/c/deploy center/ansible/mysql'
        >>> to_wsl_path(r"ansible\\mysql")
        'ansible/mysql'
    """
    normalized = ntpath.normpath(str(path))
    match = _DRIVE_RE.match(normalized)
    if not match:
        return normalized.replace("\\", "/")

    drive = match.group(1).lower()
    rest = normalized[2:].lstrip("\\/").replace("\\", "/")
    return f"/mnt/{drive}/{rest}"


def roles_path(settings: Settings, strategy: RunKindStrategy) -> Path:
    """Directory exported as ANSIBLE_ROLES_PATH for a run kind."""
    return settings.ansible_dir / strategy.roles_dir


def playbook_path(settings: Settings, strategy: RunKindStrategy, override: str | Path | None = None) -> Path:
    """Playbook for a run kind, or an explicit override.

    A relative override is resolved against the ansible directory.
    """
    if override is None:
        return settings.ansible_dir / strategy.playbook
    override = Path(override)
    if override.is_absolute():
        return override
    return settings.ansible_dir / override
