"""Exceptions for sbdeploy.

Only request validation and process spawn problems are raised as exceptions.
A playbook that runs and exits nonzero is reported through ExecutionResult,
since its partial output and credentials are still useful to the caller.
"""

from typing import Any


class DeployError(Exception):
    """Base class for sbdeploy errors.

    Attributes:
        msg: Human-readable error message
        details: Extra fields describing the failure

    Example:
        raise DeployError("Inventory directory not writable", path="/srv/inv")
        # to_dict() -> {"error": "Inventory directory not writable", "path": "/srv/inv"}
    """

    def __init__(self, msg: str, **details: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        self.details: dict[str, Any] = details

    def __str__(self) -> str:
        return self.msg

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for JSON output."""
        return {"error": self.msg, **self.details}


class ValidationError(DeployError):
    """Raised when a deployment request is rejected before any process starts."""


class UnknownRunKindError(ValidationError):
    """Raised when a run kind name has no strategy record."""

    def __init__(self, kind: str, known: list[str] | None = None) -> None:
        super().__init__(
            f"Unknown run kind: {kind}",
            kind=kind,
            known=known or [],
        )


class SpawnError(DeployError):
    """Raised when the automation engine (or the WSL layer) cannot be started."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(
            f"Failed to start {command}: {reason}",
            command=command,
        )


class ConfigError(DeployError):
    """Raised when a settings file or override is invalid."""
