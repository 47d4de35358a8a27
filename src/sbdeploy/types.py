"""Type definitions for sbdeploy.

This module defines the target hosts a deployment runs against and the
terminal result of one automation run. Hosts are owned by the caller for
the duration of a run and are never persisted here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AuthMode(str, Enum):
    """How the automation engine authenticates to a target host."""

    PASSWORD = "password"
    KEY = "key"


class PrivilegeMode(str, Enum):
    """Whether the login user is root or must escalate with sudo."""

    ROOT = "root"
    ELEVATED = "elevated"


# Request field names used by the deployment UI, mapped to TargetHost fields
_REQUEST_ALIASES = {
    "ssh_port": "port",
    "ssh_auth_type": "auth_mode",
    "ssh_user": "user",
    "ssh_user_type": "privilege",
    "ssh_key": "private_key",
    "sudo_password": "elevation_password",
    "purpose": "name",
}


@dataclass
class TargetHost:
    """A remote host that one automation run provisions.

    Attributes:
        hostname: Hostname or IP address the engine connects to
        port: SSH port (default: 22)
        auth_mode: Password or private-key authentication
        user: Login user (default: root)
        privilege: Root login or sudo elevation
        password: Login password (password mode, and sudo fallback)
        private_key: Private key material (key mode)
        elevation_password: Explicit sudo password
        role: Free-text role tag interpreted by the run kind
        name: Optional purpose or display name
        ansible_user: Optional default login user for the shared vars block

    Example:
        >>> host = TargetHost(hostname="10.0.0.5", role="primary", password="s3cret")
        >>> host.port
        22
        >>> host.uses_key
        False
    """

    hostname: str
    port: int = 22
    auth_mode: AuthMode = AuthMode.PASSWORD
    user: str = "root"
    privilege: PrivilegeMode = PrivilegeMode.ROOT
    password: str | None = field(default=None, repr=False)
    private_key: str | None = field(default=None, repr=False)
    elevation_password: str | None = field(default=None, repr=False)
    role: str | None = None
    name: str | None = None
    ansible_user: str | None = None

    def __post_init__(self) -> None:
        """Normalize enum fields given as strings."""
        self.auth_mode = AuthMode(self.auth_mode)
        if self.privilege == "sudo":
            self.privilege = PrivilegeMode.ELEVATED
        self.privilege = PrivilegeMode(self.privilege)
        self.port = int(self.port) if self.port else 22

    @property
    def address(self) -> tuple[str, int]:
        """(hostname, port) pair identifying the physical host."""
        return (self.hostname, self.port)

    @property
    def uses_key(self) -> bool:
        """True when the host authenticates with key material we must write out."""
        return self.auth_mode is AuthMode.KEY and bool(self.private_key)

    @property
    def is_elevated(self) -> bool:
        return self.privilege is PrivilegeMode.ELEVATED

    @property
    def elevation_secret(self) -> str | None:
        """Sudo password, falling back to the login password."""
        return self.elevation_password or self.password

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetHost":
        """Create a host from a request mapping.

        Accepts both the dataclass field names and the deployment UI names
        (ssh_port, ssh_auth_type, ssh_user, ssh_user_type, ssh_key,
        sudo_password). Unknown keys are ignored.

        Args:
            data: Host mapping from a request body or targets file

        Returns:
            TargetHost

        Raises:
            KeyError: If hostname is missing
            ValueError: If auth_mode or privilege has an unknown value
        """
        fields = set(cls.__dataclass_fields__)
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            key = _REQUEST_ALIASES.get(key, key)
            if key in fields and value is not None:
                kwargs[key] = value
        return cls(hostname=kwargs.pop("hostname"), **kwargs)


@dataclass
class ExecutionResult:
    """Terminal result of one automation run.

    Attributes:
        success: Whether the run succeeded
        exit_code: Engine exit code (None when the engine never started)
        stdout: Full retained stdout
        stderr: Full retained stderr
        credentials: Service name -> key -> value
        error: Human-readable failure reason (None on success)
        kind: Run kind name
        run_id: Unique run identifier
        duration: Wall time in seconds

    Example:
        >>> result = ExecutionResult(success=True, exit_code=0)
        >>> result.to_dict()["type"]
        'complete'
    """

    success: bool
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    credentials: dict[str, dict[str, str]] = field(default_factory=dict)
    error: str | None = None
    kind: str = ""
    run_id: str = ""
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the terminal ``complete`` record of the event stream."""
        result: dict[str, Any] = {
            "type": "complete",
            "success": self.success,
            "exit_code": self.exit_code,
            "credentials": self.credentials,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.kind:
            result["kind"] = self.kind
        if self.run_id:
            result["run_id"] = self.run_id
        result["duration"] = round(self.duration, 3)
        return result
