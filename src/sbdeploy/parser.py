"""Incremental parser for ansible-playbook stdout.

Output arrives in arbitrary chunks. The parser reassembles lines, classifies
each complete line and returns the resulting progress events. A partial line
at the end of a chunk is held until the next chunk (or flush()).

Classification, first match wins:

    ok: [mysql-primary-0] => {...}       task_result
    TASK [Create database user] ****     task
    PLAY [Install MySQL] ****            play
    web-0 : ok=5 changed=2 ...           status
    anything else                        kept in the buffer only
"""

import re

from .credentials import CredentialExtractor, CredentialSet
from .events import PlayEvent, ProgressEvent, StatusEvent, TaskEvent, TaskResultEvent
from .logging import get_logger

log = get_logger(__name__)

TASK_RESULT_RE = re.compile(r"^(ok|changed|fatal|skipping):\s*\[(.+?)\]\s*(.*)")
TASK_RE = re.compile(r"TASK\s+\[(.+?)\]")
PLAY_RE = re.compile(r"PLAY\s+\[(.+?)\]")
STATUS_RE = re.compile(r"(ok|changed|failed|unreachable)=(\d+)")
COUNTER_RE = re.compile(r"\b([a-z]+)=(\d+)")
RECAP_HOST_RE = re.compile(r"^\s*(\S+)\s*:\s+[a-z]+=\d+")


class OutputStreamParser:
    """Turn chunks of engine stdout into progress events.

    Attributes:
        credentials: Credential set updated by task results
        extractor: Credential extractor applied to task-result messages
        current_task: Name of the most recent TASK header ("" before any)

    Example:
        >>> parser = OutputStreamParser(CredentialSet())
        >>> parser.feed("TASK [ping]\\nok: [server-0]")
        [TaskEvent(name='ping', line='TASK [ping]')]
        >>> parser.flush()
        [TaskResultEvent(status='ok', host='server-0', task='ping', ...)]
    """

    def __init__(self, credentials: CredentialSet, extractor: CredentialExtractor | None = None) -> None:
        self.credentials = credentials
        self.extractor = extractor or CredentialExtractor()
        self.current_task = ""
        self._chunks: list[str] = []
        self._pending = ""

    @property
    def stdout(self) -> str:
        """Everything fed so far, unmodified."""
        return "".join(self._chunks)

    def feed(self, chunk: str) -> list[ProgressEvent]:
        """Consume a chunk and return events for every line it completes."""
        if not chunk:
            return []
        self._chunks.append(chunk)
        lines = (self._pending + chunk).split("\n")
        self._pending = lines.pop()

        events = []
        for line in lines:
            event = self.parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[ProgressEvent]:
        """Classify the held partial line, if any. Call once at process exit."""
        line, self._pending = self._pending, ""
        event = self.parse_line(line)
        return [event] if event is not None else []

    def parse_line(self, line: str) -> ProgressEvent | None:
        """Classify one complete line.

        Returns:
            The event for the line, or None for unclassified and blank lines
        """
        line = line.rstrip("\r")
        if not line.strip():
            return None
        log.trace(f"ansible: {line}")

        match = TASK_RESULT_RE.match(line)
        if match:
            return self._task_result(line, *match.groups())

        match = TASK_RE.search(line)
        if match:
            self.current_task = match.group(1)
            return TaskEvent(name=self.current_task, line=line)

        match = PLAY_RE.search(line)
        if match:
            self.current_task = ""
            return PlayEvent(name=match.group(1), line=line)

        match = STATUS_RE.search(line)
        if match:
            host_match = RECAP_HOST_RE.match(line)
            return StatusEvent(
                status=match.group(1),
                count=match.group(2),
                host=host_match.group(1) if host_match else None,
                counters={k: int(v) for k, v in COUNTER_RE.findall(line)},
                line=line,
            )

        return None

    def _task_result(self, line: str, status: str, host: str, rest: str) -> TaskResultEvent:
        rest = rest.strip()
        if rest.startswith("=>"):
            rest = rest[2:].lstrip()

        extraction = self.extractor.extract(rest, self.credentials)
        return TaskResultEvent(
            status=status,
            host=host,
            task=self.current_task,
            message=extraction.message,
            line=line,
            credential_update=extraction.update,
        )
