"""Ephemeral private key files for key-authenticated hosts.

ansible-playbook needs a file path for ansible_ssh_private_key_file, so key
material supplied with a request is written to a short-lived file for the
duration of one run. File names include the run id, so two runs addressing
the same host never share (or delete) each other's key file.
"""

import logging
import os
from pathlib import Path
from typing import Iterable

from .types import TargetHost

logger = logging.getLogger(__name__)


class KeyFileWriter:
    """Write and remove one run's private key files.

    Attributes:
        key_dir: Directory holding the key files
        run_id: Run identifier embedded in every file name

    Example:
        >>> writer = KeyFileWriter(Path("/tmp"), "3f2a9c0d11e4b7a8")
        >>> writer.path_for(TargetHost(hostname="10.0.0.5"))
        PosixPath('/tmp/ansible_key_3f2a9c0d11e4b7a8_10_0_0_5_22.pem')
    """

    def __init__(self, key_dir: Path, run_id: str) -> None:
        self.key_dir = key_dir
        self.run_id = run_id

    def path_for(self, host: TargetHost) -> Path:
        """Key file path for a host; stable for the lifetime of the run."""
        safe_name = host.hostname.replace(".", "_").replace(":", "_")
        return self.key_dir / f"ansible_key_{self.run_id}_{safe_name}_{host.port}.pem"

    def write(self, hosts: Iterable[TargetHost]) -> dict[tuple[str, int], Path]:
        """Write key material for every key-auth host that carries a key.

        Files are created with mode 0600.

        Args:
            hosts: Target hosts of the run

        Returns:
            (hostname, port) -> key file path
        """
        paths: dict[tuple[str, int], Path] = {}
        for host in hosts:
            if not host.uses_key:
                continue
            if host.address in paths:
                continue
            path = self.path_for(host)
            self.key_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(_with_trailing_newline(host.private_key or ""))
            paths[host.address] = path
            logger.debug(f"Wrote key file for {host.hostname}: {path}")
        return paths

    def cleanup(self, hosts: Iterable[TargetHost]) -> int:
        """Remove the key files of a run.

        Missing files and OS errors are logged, never raised, so calling this
        twice is harmless.

        Returns:
            Number of files removed
        """
        removed = 0
        for host in hosts:
            if not host.uses_key:
                continue
            path = self.path_for(host)
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Could not remove key file {path}: {e}")
        return removed


def _with_trailing_newline(key: str) -> str:
    # OpenSSH rejects PEM bodies without a final newline
    return key if key.endswith("\n") else key + "\n"
