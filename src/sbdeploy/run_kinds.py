"""Run kind strategy records.

Each run kind (mysql, mongodb, kubernetes, ...) selects the playbook to run,
how target hosts are grouped in the inventory, where reusable roles live and
which service's credentials the run produces. The record is looked up once
at run start and passed to every stage of the pipeline.
"""

from dataclasses import dataclass, field
from typing import Callable, Sequence

from .exceptions import UnknownRunKindError
from .inventory import HostGroup
from .types import TargetHost

GroupingFn = Callable[[Sequence[TargetHost]], list[HostGroup]]

# Roles that count as "no role given"
_UNSET = (None, "")


def role_grouping(prefix: str, *rules: tuple[str, tuple[str | None, ...]]) -> GroupingFn:
    """Build a grouping function that splits hosts by role tag.

    Args:
        prefix: Entry name prefix (e.g. "mysql" -> "mysql-primary-0")
        *rules: (group name, role tags belonging to it) in output order

    Returns:
        Grouping function; groups with no members are omitted
    """

    def group(hosts: Sequence[TargetHost]) -> list[HostGroup]:
        groups = []
        for name, roles in rules:
            members = [h for h in hosts if h.role in roles]
            if not members:
                continue
            host_group = HostGroup(name=name)
            for idx, host in enumerate(members):
                host_group.add_host(f"{prefix}-{name}-{idx}", host)
            groups.append(host_group)
        return groups

    return group


def all_grouping(dedupe: bool = False) -> GroupingFn:
    """Build a grouping function that puts every host in the ``all`` group.

    Args:
        dedupe: Keep only the first host per (hostname, port). Several logical
            roles may point at one machine; listing it twice makes the engine
            run package-manager steps twice against it and fight over the lock.
    """

    def group(hosts: Sequence[TargetHost]) -> list[HostGroup]:
        host_group = HostGroup(name="all")
        seen: set[tuple[str, int]] = set()
        idx = 0
        for host in hosts:
            if dedupe:
                if host.address in seen:
                    continue
                seen.add(host.address)
            host_group.add_host(f"server-{idx}", host)
            idx += 1
        return [host_group]

    return group


@dataclass(frozen=True)
class RunKindStrategy:
    """Everything that varies between run kinds.

    Attributes:
        name: Run kind name
        playbook: Playbook path relative to the ansible directory
        roles_dir: Reusable-role directory relative to the ansible directory
        group: Grouping function for the inventory
        aggregate: Name of the ``[<name>:children]`` group, if any
        credential_service: Service whose credentials the run generates
        credential_defaults: Values injected into that service's credentials
    """

    name: str
    playbook: str
    group: GroupingFn
    roles_dir: str = "roles"
    aggregate: str | None = None
    credential_service: str | None = None
    credential_defaults: dict[str, str] = field(default_factory=dict)


_STRATEGIES: dict[str, RunKindStrategy] = {}


def _register(strategy: RunKindStrategy) -> None:
    _STRATEGIES[strategy.name] = strategy


_register(RunKindStrategy(
    name="mysql",
    playbook="mysql/playbook.yml",
    roles_dir="mysql/role",
    group=role_grouping(
        "mysql",
        ("primary", ("primary", *_UNSET)),
        ("secondary", ("secondary",)),
    ),
    aggregate="mysql",
    credential_service="mysql",
    credential_defaults={"path": "/tmp/mysql_credentials.txt"},
))
_register(RunKindStrategy(
    name="mongodb",
    playbook="mongodb/playbook.yml",
    roles_dir="mongodb/role",
    group=role_grouping(
        "mongo",
        ("primary", ("primary", *_UNSET)),
        ("secondary", ("secondary",)),
        ("arbiter", ("arbiter",)),
    ),
    aggregate="mongo",
    credential_service="mongodb",
    credential_defaults={"path": "/tmp/mongodb_credentials.txt"},
))
_register(RunKindStrategy(
    name="nfs",
    playbook="nfs/playbook.yml",
    group=all_grouping(),
))
_register(RunKindStrategy(
    name="rabbitmq",
    playbook="rabbitmq/playbook.yml",
    group=all_grouping(),
    credential_service="rabbitmq",
))
_register(RunKindStrategy(
    name="env-check",
    playbook="env-check/playbook.yml",
    group=all_grouping(dedupe=True),
))
# The master-node requirement is enforced by request validation, not here
_register(RunKindStrategy(
    name="kubernetes",
    playbook="kubernetes/playbook.yml",
    group=role_grouping(
        "k8s",
        ("master", ("master", "k8s-master")),
        ("worker", ("worker", "k8s-worker")),
    ),
    aggregate="kubernetes",
))
_register(RunKindStrategy(
    name="loadbalancer",
    playbook="loadbalancer/playbook.yml",
    group=all_grouping(),
))
_register(RunKindStrategy(
    name="kubectl",
    playbook="kubectl-istio/playbook.yml",
    group=all_grouping(),
))
_register(RunKindStrategy(
    name="helm",
    playbook="helm/playbook.yml",
    group=all_grouping(),
))
_register(RunKindStrategy(
    name="ssl",
    playbook="ssl/playbook.yml",
    group=all_grouping(),
))
_register(RunKindStrategy(
    name="stackbill",
    playbook="stackbill/playbook.yml",
    group=all_grouping(),
))


def get_run_kind(name: str) -> RunKindStrategy:
    """Look up the strategy record for a run kind.

    Raises:
        UnknownRunKindError: If no run kind has this name
    """
    try:
        return _STRATEGIES[name]
    except KeyError:
        raise UnknownRunKindError(name, known=list(_STRATEGIES)) from None


def list_run_kinds() -> list[RunKindStrategy]:
    """All run kinds in declaration order."""
    return list(_STRATEGIES.values())
