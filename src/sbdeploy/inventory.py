"""Inventory generation for sbdeploy.

Turns the caller's target hosts into the INI inventory that ansible-playbook
reads. Grouping depends on the run kind (see run_kinds); the host line format
and the shared [all:vars] block are the same for every kind.

Example output for a mysql run:

    [primary]
    mysql-primary-0 ansible_host=10.0.0.5 ansible_port=22 ansible_user=root ansible_ssh_pass=...

    [secondary]
    mysql-secondary-0 ansible_host=10.0.0.6 ansible_port=22 ansible_user=root ansible_ssh_pass=...

    [mysql:children]
    primary
    secondary

    [all:vars]
    ansible_user=ubuntu
    ansible_become=true
    ansible_ssh_common_args='-o StrictHostKeyChecking=no ...'
"""

import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Sequence

from .types import AuthMode, TargetHost

if TYPE_CHECKING:
    from .config import Settings
    from .run_kinds import RunKindStrategy

logger = logging.getLogger(__name__)


@dataclass
class HostGroup:
    """A group of hosts in the inventory.

    Attributes:
        name: Group name (e.g., "primary", "worker", "all")
        hosts: Inventory entry name -> TargetHost, in insertion order

    Example:
        >>> group = HostGroup(name="primary")
        >>> group.add_host("mysql-primary-0", TargetHost(hostname="10.0.0.5"))
        >>> group.entry_names()
        ['mysql-primary-0']
    """

    name: str
    hosts: dict[str, TargetHost] = field(default_factory=dict)

    def add_host(self, entry: str, host: TargetHost) -> None:
        """Add a host under the given inventory entry name."""
        self.hosts[entry] = host

    def entry_names(self) -> list[str]:
        return list(self.hosts)


@dataclass
class Inventory:
    """Grouped hosts plus the connection settings for one run.

    Attributes:
        groups: Host groups in output order
        aggregate: Name of the [<aggregate>:children] group, if any
        default_user: Value for ansible_user in [all:vars]
        ssh_common_args: Value for ansible_ssh_common_args in [all:vars]
        key_paths: (hostname, port) -> private key file for key-auth hosts
    """

    groups: list[HostGroup] = field(default_factory=list)
    aggregate: str | None = None
    default_user: str = "ubuntu"
    ssh_common_args: str = ""
    key_paths: Mapping[tuple[str, int], Path | str] = field(default_factory=dict)

    def render(self) -> str:
        """Render the inventory as INI text."""
        content = ""
        for group in self.groups:
            content += f"[{group.name}]\n"
            for entry, host in group.hosts.items():
                content += self.host_line(entry, host) + "\n"
            if self.aggregate:
                content += "\n"

        if self.aggregate:
            content += f"[{self.aggregate}:children]\n"
            for group in self.groups:
                content += f"{group.name}\n"

        content += "\n[all:vars]\n"
        content += f"ansible_user={self.default_user}\n"
        content += "ansible_become=true\n"
        content += f"ansible_ssh_common_args='{self.ssh_common_args}'\n"
        return content

    def host_line(self, entry: str, host: TargetHost) -> str:
        """Format one host line with exactly one authentication clause."""
        line = (
            f"{entry} ansible_host={host.hostname} ansible_port={host.port}"
            f" ansible_user={host.user}"
        )

        if host.uses_key:
            key_path = self.key_paths.get(host.address)
            if key_path is not None:
                line += f" ansible_ssh_private_key_file={key_path}"
        elif host.password and host.auth_mode is AuthMode.PASSWORD:
            line += f" ansible_ssh_pass={host.password}"

        if host.is_elevated:
            line += " ansible_become=yes ansible_become_method=sudo"
            if host.elevation_secret:
                line += f" ansible_become_pass={host.elevation_secret}"

        return line


def build_inventory(
    hosts: Sequence[TargetHost],
    strategy: "RunKindStrategy",
    key_paths: Mapping[tuple[str, int], Path | str] | None = None,
    settings: "Settings | None" = None,
) -> str:
    """Build the inventory text for one run.

    Deterministic: the same hosts, strategy, key paths and settings always
    produce byte-identical text. Hosts are not modified.

    Args:
        hosts: Target hosts in caller order
        strategy: Run kind strategy selecting the grouping
        key_paths: (hostname, port) -> private key file (from KeyFileWriter.write)
        settings: Settings providing default_user and ssh_common_args

    Returns:
        INI inventory text

    Example:
        >>> text = build_inventory(hosts, get_run_kind("mysql"))
        >>> "[mysql:children]" in text
        True
    """
    if settings is None:
        from .config import Settings

        settings = Settings()

    default_user = next(
        (h.ansible_user for h in hosts if h.ansible_user),
        settings.default_user,
    )
    inventory = Inventory(
        groups=strategy.group(hosts),
        aggregate=strategy.aggregate,
        default_user=default_user,
        ssh_common_args=settings.ssh_common_args,
        key_paths=key_paths or {},
    )
    return inventory.render()


def new_run_id() -> str:
    """Random identifier naming one run's ephemeral files."""
    return secrets.token_hex(8)


def inventory_path(inventory_dir: Path, run_id: str) -> Path:
    return inventory_dir / f"{run_id}.ini"


def write_inventory(text: str, inventory_dir: Path, run_id: str) -> Path:
    """Write inventory text to ``<inventory_dir>/<run_id>.ini``.

    Args:
        text: Rendered inventory
        inventory_dir: Scratch directory (created if missing)
        run_id: Run identifier from new_run_id()

    Returns:
        Path of the written file
    """
    inventory_dir.mkdir(parents=True, exist_ok=True)
    path = inventory_path(inventory_dir, run_id)
    path.write_text(text)
    path.chmod(0o600)
    logger.debug(f"Wrote inventory {path}")
    return path


def remove_inventory(path: Path) -> bool:
    """Delete an inventory file.

    Returns:
        True if a file was removed, False if it was already gone
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.debug(f"Removed inventory {path}")
    return True
