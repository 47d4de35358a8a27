"""Request checks applied before a run is started.

The runner itself trusts its input; these rules belong to whoever accepts
requests (the CLI here).
"""

from typing import Any, Mapping, Sequence

from .exceptions import ValidationError
from .run_kinds import get_run_kind
from .types import TargetHost

NFS_REQUIRED_VARS = ("disk_device", "client_ip_range")


def validate_hosts(hosts: Sequence[TargetHost]) -> None:
    """Require at least one host, each with a hostname."""
    if not hosts:
        raise ValidationError("Servers array is required")
    for idx, host in enumerate(hosts, start=1):
        if not host.hostname:
            raise ValidationError(f"Server {idx}: hostname is required", index=idx)


def validate_kubernetes_master(hosts: Sequence[TargetHost]) -> None:
    if not any(h.role == "master" for h in hosts):
        raise ValidationError("At least one master node is required")


def validate_nfs_variables(extra_vars: Mapping[str, Any]) -> None:
    missing = [name for name in NFS_REQUIRED_VARS if not extra_vars.get(name)]
    if missing:
        raise ValidationError(
            "Variables disk_device and client_ip_range are required",
            missing=missing,
        )


def validate_request(
    kind: str,
    hosts: Sequence[TargetHost],
    extra_vars: Mapping[str, Any] | None = None,
) -> None:
    """Validate a complete run request.

    Raises:
        UnknownRunKindError: If kind names no run kind
        ValidationError: If the hosts or variables are unusable for the kind

    Example:
        >>> validate_request("kubernetes", [TargetHost(hostname="10.0.0.5", role="worker")])
        Traceback (most recent call last):
        ...
        sbdeploy.exceptions.ValidationError: At least one master node is required
    """
    get_run_kind(kind)
    validate_hosts(hosts)
    if kind == "kubernetes":
        validate_kubernetes_master(hosts)
    elif kind == "nfs":
        validate_nfs_variables(extra_vars or {})
