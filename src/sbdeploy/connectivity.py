"""SSH preflight: can each target host be logged into with its credentials?

Uses the same credentials the inventory hands to ansible-playbook, so a
host that fails here will fail the run as unreachable.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Sequence

import asyncssh

from .types import TargetHost

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


@dataclass
class ConnectivityResult:
    """Outcome of one SSH login attempt."""

    host: TargetHost
    ok: bool
    message: str

    @property
    def label(self) -> str:
        hostname, port = self.host.address
        return f"{self.host.name or hostname} ({hostname}:{port})"


def _connect_kwargs(host: TargetHost, timeout: float) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "host": host.hostname,
        "port": host.port,
        "username": host.user,
        "known_hosts": None,
        "connect_timeout": timeout,
    }
    if host.uses_key:
        kwargs["client_keys"] = [asyncssh.import_private_key(host.private_key)]
    elif host.password:
        kwargs["password"] = host.password
        kwargs["client_keys"] = None
    return kwargs


async def check_host(host: TargetHost, timeout: float = DEFAULT_TIMEOUT) -> ConnectivityResult:
    """Open and close one SSH connection to a host.

    Never raises for connection problems; they are reported in the result.
    """
    try:
        kwargs = _connect_kwargs(host, timeout)
    except (asyncssh.KeyImportError, ValueError) as e:
        return ConnectivityResult(host, False, f"Invalid private key: {e}")

    try:
        async with asyncssh.connect(**kwargs):
            pass
    except asyncssh.PermissionDenied:
        return ConnectivityResult(host, False, "Authentication failed (permission denied)")
    except asyncio.TimeoutError:
        return ConnectivityResult(host, False, "Connection timeout")
    except ConnectionRefusedError:
        return ConnectivityResult(host, False, "Connection refused")
    except (OSError, asyncssh.Error) as e:
        return ConnectivityResult(host, False, f"SSH error: {e}")

    logger.debug(f"SSH login to {host.hostname}:{host.port} as {host.user} succeeded")
    return ConnectivityResult(host, True, "OK")


async def check_hosts(hosts: Sequence[TargetHost], timeout: float = DEFAULT_TIMEOUT) -> list[ConnectivityResult]:
    """Check all hosts concurrently; results are in input order."""
    return list(await asyncio.gather(*(check_host(h, timeout) for h in hosts)))
