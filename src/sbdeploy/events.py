"""Progress events emitted while a playbook runs.

Every classified line of ansible-playbook output becomes one of these
events. Events are immutable and are delivered in the order their lines
were produced. Each serializes to a mapping whose ``type`` key names the
event kind:

    {"type": "play", "play": "Install MySQL"}
    {"type": "task", "task": "Create database user"}
    {"type": "task_result", "status": "ok", "host": "mysql-primary-0", ...}
    {"type": "status", "status": "ok", "count": "12", ...}
    {"type": "error", "line": "[WARNING]: ..."}
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union


class _JsonMixin:
    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_json(self) -> str:
        """Serialize to one JSON line."""
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class CredentialUpdate:
    """Snapshot of one service's credentials after a task result.

    Attributes:
        service: Service name (lower case)
        data: Copy of the service's key/value pairs at that point
    """

    service: str
    data: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"service": self.service, "data": dict(self.data)}


@dataclass(frozen=True)
class PlayEvent(_JsonMixin):
    """A ``PLAY [name]`` header."""

    type: ClassVar[str] = "play"

    name: str
    line: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "play": self.name, "line": self.line}


@dataclass(frozen=True)
class TaskEvent(_JsonMixin):
    """A ``TASK [name]`` header; the name becomes the current task."""

    type: ClassVar[str] = "task"

    name: str
    line: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "task": self.name, "line": self.line}


@dataclass(frozen=True)
class TaskResultEvent(_JsonMixin):
    """A per-host task result such as ``changed: [web-0]``.

    Attributes:
        status: ok, changed, fatal or skipping
        host: Inventory entry name from the brackets
        task: Name of the task the result belongs to
        message: Display text with credential fragments removed
        line: The raw output line
        credential_update: Credentials recorded from this result, if any
    """

    type: ClassVar[str] = "task_result"

    status: str
    host: str
    task: str = ""
    message: str = ""
    line: str = ""
    credential_update: CredentialUpdate | None = None

    @property
    def failed(self) -> bool:
        return self.status == "fatal"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "status": self.status,
            "host": self.host,
            "task": self.task,
            "message": self.message,
            "line": self.line,
            "credentialUpdate": (
                self.credential_update.to_dict() if self.credential_update else None
            ),
        }


@dataclass(frozen=True)
class StatusEvent(_JsonMixin):
    """A PLAY RECAP counter line such as ``web-0 : ok=5 changed=2 ...``.

    Attributes:
        status: First counter name found on the line
        count: Its value, as printed
        host: Recap host name, when the line has one
        counters: All counters on the line
        line: The raw output line
    """

    type: ClassVar[str] = "status"

    status: str
    count: str
    host: str | None = None
    counters: dict[str, int] = field(default_factory=dict)
    line: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.type,
            "status": self.status,
            "count": self.count,
            "line": self.line,
        }
        if self.host:
            result["host"] = self.host
        if self.counters:
            result["counters"] = dict(self.counters)
        return result


@dataclass(frozen=True)
class ErrorEvent(_JsonMixin):
    """A chunk of engine stderr, forwarded verbatim."""

    type: ClassVar[str] = "error"

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "line": self.text}


ProgressEvent = Union[PlayEvent, TaskEvent, TaskResultEvent, StatusEvent, ErrorEvent]


def sse_frame(record: dict[str, Any]) -> str:
    """Frame a transport record as a server-sent event.

    Example:
        >>> sse_frame({"type": "task", "task": "ping"})
        'data: {"type": "task", "task": "ping"}\\n\\n'
    """
    return f"data: {json.dumps(record)}\n\n"
