"""Progress reporting for deployment runs.

Reporters receive the run's ProgressEvents as they are parsed and the final
ExecutionResult. Three transports are provided:

- JsonEventReporter: NDJSON, one event record per line, then the
  ``complete`` record
- TextEventReporter: plain text for logs and non-interactive terminals
- RunProgressDisplay: Rich spinner with the current play/task, colored task
  results and a recap table

EventCollector keeps every event for callers that want the whole stream
after the run, not while it happens.
"""

import json
import sys
from abc import ABC, abstractmethod
from typing import Any, Sequence

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .events import (
    ErrorEvent,
    PlayEvent,
    ProgressEvent,
    StatusEvent,
    TaskEvent,
    TaskResultEvent,
    sse_frame,
)
from .types import ExecutionResult, TargetHost

STATUS_STYLES = {
    "ok": "green",
    "changed": "yellow",
    "fatal": "red bold",
    "skipping": "cyan",
}


class EventReporter(ABC):
    """Base class for run reporters."""

    @abstractmethod
    def on_run_start(self, kind: str, hosts: Sequence[TargetHost]) -> None:
        """Called before the engine starts."""

    @abstractmethod
    def on_event(self, event: ProgressEvent) -> None:
        """Called for every progress event, in order."""

    @abstractmethod
    def on_run_complete(self, result: ExecutionResult) -> None:
        """Called once with the final result."""

    def __call__(self, event: ProgressEvent) -> None:
        self.on_event(event)

    def __enter__(self) -> "EventReporter":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        pass


class JsonEventReporter(EventReporter):
    """Writes NDJSON records: ``start``, every event, then ``complete``."""

    def __init__(self, output: Any = None, include_output: bool = False) -> None:
        """Initialize the reporter.

        Args:
            output: Output stream (defaults to sys.stdout)
            include_output: Keep full stdout/stderr in the complete record
        """
        self.output = output or sys.stdout
        self.include_output = include_output

    def _emit(self, record: dict[str, Any]) -> None:
        print(json.dumps(record), file=self.output, flush=True)

    def on_run_start(self, kind: str, hosts: Sequence[TargetHost]) -> None:
        self._emit({"type": "start", "kind": kind, "hosts": [h.hostname for h in hosts]})

    def on_event(self, event: ProgressEvent) -> None:
        print(event.to_json(), file=self.output, flush=True)

    def on_run_complete(self, result: ExecutionResult) -> None:
        record = result.to_dict()
        if not self.include_output:
            record.pop("stdout", None)
            record.pop("stderr", None)
        self._emit(record)


class TextEventReporter(EventReporter):
    """Plain-text progress, one line per interesting event."""

    def __init__(self, output: Any = None) -> None:
        self.output = output or sys.stderr
        self.failures = 0

    def _emit(self, message: str) -> None:
        print(message, file=self.output, flush=True)

    def on_run_start(self, kind: str, hosts: Sequence[TargetHost]) -> None:
        self.failures = 0
        self._emit(f"Running {kind} on {len(hosts)} host(s)...")

    def on_event(self, event: ProgressEvent) -> None:
        if isinstance(event, PlayEvent):
            self._emit(f"PLAY {event.name}")
        elif isinstance(event, TaskEvent):
            self._emit(f"  TASK {event.name}")
        elif isinstance(event, TaskResultEvent):
            if event.failed:
                self.failures += 1
            suffix = f": {event.message}" if event.failed and event.message else ""
            self._emit(f"    {event.status}: {event.host}{suffix}")
        elif isinstance(event, StatusEvent) and event.host:
            counters = " ".join(f"{k}={v}" for k, v in event.counters.items())
            self._emit(f"  {event.host}: {counters}")
        elif isinstance(event, ErrorEvent):
            self._emit(event.text.rstrip("\n"))

    def on_run_complete(self, result: ExecutionResult) -> None:
        if result.success:
            self._emit(f"Completed {result.kind} in {result.duration:.1f}s")
        else:
            self._emit(f"FAILED {result.kind}: {result.error}")


class NullEventReporter(EventReporter):
    """Discards everything."""

    def on_run_start(self, kind: str, hosts: Sequence[TargetHost]) -> None:
        pass

    def on_event(self, event: ProgressEvent) -> None:
        pass

    def on_run_complete(self, result: ExecutionResult) -> None:
        pass


class EventCollector(EventReporter):
    """Keeps every event of a run for non-streaming callers.

    Example:
        >>> collector = EventCollector()
        >>> result = await runner.run("mysql", hosts, on_event=collector)
        >>> collector.on_run_complete(result)
        >>> [r["type"] for r in collector.records()][-1]
        'complete'
    """

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []
        self.result: ExecutionResult | None = None

    def on_run_start(self, kind: str, hosts: Sequence[TargetHost]) -> None:
        self.events.clear()
        self.result = None

    def on_event(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def on_run_complete(self, result: ExecutionResult) -> None:
        self.result = result

    def of_type(self, event_type: type) -> list[ProgressEvent]:
        return [e for e in self.events if isinstance(e, event_type)]

    def records(self) -> list[dict[str, Any]]:
        """Transport records for the run, ending with ``complete`` once known."""
        records = [e.to_dict() for e in self.events]
        if self.result is not None:
            records.append(self.result.to_dict())
        return records

    def sse(self) -> str:
        """All records framed as server-sent events."""
        return "".join(sse_frame(r) for r in self.records())


def create_event_reporter(
    enabled: bool,
    json_format: bool = False,
    output: Any = None,
) -> EventReporter:
    """Create a reporter for non-interactive output.

    Args:
        enabled: Whether progress reporting is enabled
        json_format: Use NDJSON instead of text
        output: Output stream (reporter default when None)

    Returns:
        EventReporter instance
    """
    if not enabled:
        return NullEventReporter()
    if json_format:
        return JsonEventReporter(output)
    return TextEventReporter(output)


class RunProgressDisplay(EventReporter):
    """Rich display of a running playbook.

    A transient spinner shows the current play and task; task results are
    printed above it as they arrive. The recap table is printed when the
    run completes.

    Example:
        display = RunProgressDisplay()
        with display:
            display.on_run_start("mysql", hosts)
            result = await runner.run("mysql", hosts, on_event=display)
        display.on_run_complete(result)
    """

    def __init__(self, console: Console | None = None, show_skipped: bool = False) -> None:
        self.console = console or Console(stderr=True)
        self.show_skipped = show_skipped
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        self._task_id: Any = None
        self._play = ""
        self._recap: dict[str, dict[str, int]] = {}

    def __enter__(self) -> "RunProgressDisplay":
        self.progress.start()
        self._task_id = self.progress.add_task("Starting ansible-playbook", total=None)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.progress.stop()

    def _describe(self, description: str) -> None:
        if self._task_id is not None:
            self.progress.update(self._task_id, description=escape(description))

    def on_run_start(self, kind: str, hosts: Sequence[TargetHost]) -> None:
        self._recap.clear()
        self.console.print(f"[bold]Running {kind}[/bold] on {len(hosts)} host(s)")

    def on_event(self, event: ProgressEvent) -> None:
        if isinstance(event, PlayEvent):
            self._play = event.name
            self._describe(event.name)
            self.console.print(f"[bold magenta]PLAY[/bold magenta] {escape(event.name)}")
        elif isinstance(event, TaskEvent):
            self._describe(f"{self._play} / {event.name}" if self._play else event.name)
        elif isinstance(event, TaskResultEvent):
            if event.status == "skipping" and not self.show_skipped:
                return
            style = STATUS_STYLES.get(event.status, "")
            line = f"[{style}]{event.status}[/{style}] {escape(f'[{event.host}]')} {escape(event.task)}"
            if event.failed and event.message:
                line += f"\n    [red]{escape(event.message)}[/red]"
            self.console.print(line, highlight=False)
        elif isinstance(event, StatusEvent) and event.host:
            self._recap[event.host] = dict(event.counters)
        elif isinstance(event, ErrorEvent):
            self.console.print(event.text.rstrip("\n"), style="yellow", markup=False, highlight=False)

    def on_run_complete(self, result: ExecutionResult) -> None:
        if self._recap:
            self.console.print(self.recap_table())
        if result.success:
            self.console.print(f"[green bold]✓[/green bold] {result.kind} completed in {result.duration:.1f}s")
        else:
            self.console.print(f"[red bold]✗[/red bold] {result.kind} failed: {result.error}")

    def recap_table(self) -> Table:
        """Per-host PLAY RECAP counters."""
        table = Table(title="Play recap")
        columns = ["ok", "changed", "unreachable", "failed", "skipped"]
        table.add_column("Host")
        for column in columns:
            table.add_column(column, justify="right")
        for host, counters in self._recap.items():
            failed = counters.get("failed", 0) or counters.get("unreachable", 0)
            table.add_row(
                host,
                *(str(counters.get(c, 0)) for c in columns),
                style="red" if failed else None,
            )
        return table
