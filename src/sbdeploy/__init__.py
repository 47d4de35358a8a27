"""sbdeploy - StackBill deployment runner.

Turns a list of target hosts into an Ansible inventory, runs the playbook
for a run kind and streams its progress as typed events.

Quick Start:
    from sbdeploy import TargetHost, run_playbook

    hosts = [TargetHost(hostname="10.0.0.5", role="primary", password="s3cret")]
    result = await run_playbook("mysql", hosts, on_event=print)
    print(result.credentials["mysql"])
"""

__version__ = "0.1.0"

from sbdeploy.config import Settings, load_settings
from sbdeploy.runner import DeploymentRunner, run_playbook
from sbdeploy.types import AuthMode, ExecutionResult, PrivilegeMode, TargetHost

__all__ = [
    "__version__",
    "AuthMode",
    "DeploymentRunner",
    "ExecutionResult",
    "PrivilegeMode",
    "Settings",
    "TargetHost",
    "load_settings",
    "run_playbook",
]
