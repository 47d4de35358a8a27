"""Run one deployment from target hosts to final result.

    hosts ──► key files + inventory ──► ansible-playbook
                                             │ stdout/stderr chunks
                                             ▼
                        OutputStreamParser ──► on_event(ProgressEvent)
                                             │ exit
                                             ▼
              fallback credential scan + defaults ──► ExecutionResult
                                             │
                                          cleanup (always)
"""

import inspect
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Sequence

from .config import Settings
from .credentials import CredentialExtractor, CredentialSet, recover_from_buffer
from .events import ErrorEvent, ProgressEvent
from .exceptions import SpawnError
from .executor import PlaybookExecutor
from .inventory import build_inventory, new_run_id, remove_inventory, write_inventory
from .keyfiles import KeyFileWriter
from .logging import get_logger
from .parser import OutputStreamParser
from .paths import playbook_path
from .run_kinds import RunKindStrategy, get_run_kind
from .types import ExecutionResult, TargetHost

EventCallback = Callable[[ProgressEvent], Awaitable[Any] | Any]

logger = logging.getLogger(__name__)


class RunArtifacts:
    """Ephemeral files created for one run.

    cleanup() may be called any number of times; each file gets exactly one
    successful delete at most.
    """

    def __init__(self, run_id: str, key_writer: KeyFileWriter, hosts: Sequence[TargetHost]) -> None:
        self.run_id = run_id
        self.key_writer = key_writer
        self.hosts = list(hosts)
        self.inventory_path: Path | None = None
        self._cleaned = False

    def cleanup(self) -> None:
        if self._cleaned:
            return
        self._cleaned = True
        if self.inventory_path is not None:
            try:
                remove_inventory(self.inventory_path)
            except OSError as e:
                logger.warning(f"Could not remove inventory {self.inventory_path}: {e}")
        removed = self.key_writer.cleanup(self.hosts)
        if removed:
            logger.debug(f"Removed {removed} key file(s) for run {self.run_id}")


class DeploymentRunner:
    """Executes deployment runs with the given settings.

    Each call to run() is independent; several runs may be awaited
    concurrently on one runner.

    Example:
        >>> runner = DeploymentRunner(load_settings())
        >>> result = await runner.run("mysql", hosts, on_event=print)
        >>> result.credentials["mysql"]["path"]
        '/tmp/mysql_credentials.txt'
    """

    def __init__(self, settings: Settings | None = None, executor: PlaybookExecutor | None = None) -> None:
        self.settings = settings or Settings()
        self.executor = executor or PlaybookExecutor(self.settings)
        self.extractor = CredentialExtractor()

    async def run(
        self,
        kind: str | RunKindStrategy,
        hosts: Sequence[TargetHost],
        extra_vars: Mapping[str, Any] | None = None,
        on_event: EventCallback | None = None,
        playbook: str | Path | None = None,
    ) -> ExecutionResult:
        """Run a playbook against the hosts and report the outcome.

        Args:
            kind: Run kind name or strategy record
            hosts: Target hosts (already validated)
            extra_vars: Variables passed to the playbook with -e
            on_event: Called with every progress event, in order; may be async
            playbook: Playbook override (relative to the ansible directory)

        Returns:
            ExecutionResult; engine failures and spawn errors are results,
            not exceptions

        Raises:
            UnknownRunKindError: If kind names no run kind
        """
        strategy = get_run_kind(kind) if isinstance(kind, str) else kind
        run_id = new_run_id()
        log = get_logger(__name__, run_id=run_id, kind=strategy.name)
        artifacts = RunArtifacts(run_id, KeyFileWriter(self.settings.key_dir, run_id), hosts)
        started = time.monotonic()

        credentials = CredentialSet(seeds=_seeds(strategy))
        parser = OutputStreamParser(credentials, self.extractor)

        async def emit(event: ProgressEvent) -> None:
            if on_event is None:
                return
            try:
                result = on_event(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.warning(f"Event callback error: {e}")

        async def on_stdout(chunk: str) -> None:
            for event in parser.feed(chunk):
                await emit(event)

        async def on_stderr(chunk: str) -> None:
            await emit(ErrorEvent(text=chunk))

        log.info(f"Starting run with {len(hosts)} host(s)")
        try:
            key_paths = artifacts.key_writer.write(hosts)
            text = build_inventory(hosts, strategy, key_paths, self.settings)
            artifacts.inventory_path = write_inventory(text, self.settings.inventory_dir, run_id)
            target = playbook_path(self.settings, strategy, playbook)

            try:
                with log.performance("ansible-playbook", level=logging.DEBUG):
                    outcome = await self.executor.execute(
                        strategy,
                        artifacts.inventory_path,
                        target,
                        extra_vars,
                        on_stdout=on_stdout,
                        on_stderr=on_stderr,
                    )
            except SpawnError as e:
                log.error(str(e))
                return ExecutionResult(
                    success=False,
                    exit_code=None,
                    error=str(e),
                    kind=strategy.name,
                    run_id=run_id,
                    duration=time.monotonic() - started,
                )

            for event in parser.flush():
                await emit(event)

            self._reconcile_credentials(strategy, parser.stdout, credentials)
            duration = time.monotonic() - started
            if outcome.success:
                log.info(f"Run succeeded in {duration:.1f}s")
            else:
                log.warning(f"Run failed: {outcome.error}", exit_code=outcome.exit_code)

            return ExecutionResult(
                success=outcome.success,
                exit_code=outcome.exit_code,
                stdout=outcome.stdout,
                stderr=outcome.stderr,
                credentials=credentials.to_dict(),
                error=outcome.error,
                kind=strategy.name,
                run_id=run_id,
                duration=duration,
            )
        finally:
            artifacts.cleanup()

    def _reconcile_credentials(self, strategy: RunKindStrategy, stdout: str, credentials: CredentialSet) -> None:
        service = strategy.credential_service
        if service is None:
            return
        recover_from_buffer(stdout, service, credentials)
        if strategy.credential_defaults:
            credentials.apply_defaults(service, strategy.credential_defaults)


def _seeds(strategy: RunKindStrategy) -> dict[str, dict[str, str]]:
    if strategy.credential_service and strategy.credential_defaults:
        return {strategy.credential_service: dict(strategy.credential_defaults)}
    return {}


async def run_playbook(
    kind: str,
    hosts: Sequence[TargetHost],
    extra_vars: Mapping[str, Any] | None = None,
    on_event: EventCallback | None = None,
    settings: Settings | None = None,
    playbook: str | Path | None = None,
) -> ExecutionResult:
    """Run one deployment with a throwaway runner.

    Example:
        >>> result = await run_playbook("env-check", hosts)
        >>> result.success
        True
    """
    return await DeploymentRunner(settings).run(kind, hosts, extra_vars, on_event, playbook)
