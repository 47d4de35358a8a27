"""Launch and supervise ansible-playbook.

One subprocess per run. stdout and stderr are read concurrently in
fixed-size chunks and handed to callbacks as they arrive; nothing waits for
the process to exit before the caller sees output.

On Windows the engine runs inside WSL. Environment variables do not cross
the WSL boundary, so they are written into the bash command line instead:

    wsl bash -c "ANSIBLE_ROLES_PATH=/mnt/c/ansible/roles ... ansible-playbook -i ... ..."
"""

import asyncio
import codecs
import inspect
import json
import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from .config import Settings
from .exceptions import SpawnError
from .paths import roles_path, to_wsl_path
from .run_kinds import RunKindStrategy

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], Awaitable[Any] | Any]

ANSIBLE_ENV = {
    "ANSIBLE_HOST_KEY_CHECKING": "False",
    "ANSIBLE_SSH_COMMON_ARGS": "-o StrictHostKeyChecking=no",
    "PYTHONUNBUFFERED": "1",
    "ANSIBLE_NOCOLOR": "1",
}

EXIT_MESSAGES = {
    2: "One or more tasks failed",
    4: "One or more hosts unreachable",
}


def classify_exit(code: int) -> tuple[bool, str | None]:
    """Classify an ansible-playbook exit code.

    Returns:
        (success, error message or None)

    Example:
        >>> classify_exit(0)
        (True, None)
        >>> classify_exit(4)
        (False, 'One or more hosts unreachable')
    """
    if code == 0:
        return True, None
    return False, EXIT_MESSAGES.get(code, f"Process exited with code {code}")


@dataclass
class ProcessOutcome:
    """What the engine process left behind.

    Attributes:
        exit_code: Process exit code
        stdout: Complete decoded stdout
        stderr: Complete decoded stderr
        command: argv that was executed
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    command: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return classify_exit(self.exit_code)[0]

    @property
    def error(self) -> str | None:
        return classify_exit(self.exit_code)[1]


def build_env(settings: Settings, roles: str | Path, base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for the engine: the inherited one plus Ansible settings."""
    env = dict(os.environ if base is None else base)
    env.update(ANSIBLE_ENV)
    env["ANSIBLE_ROLES_PATH"] = str(roles)
    return env


def _extra_vars_args(extra_vars: Mapping[str, Any] | None) -> list[str]:
    if not extra_vars:
        return []
    return ["-e", json.dumps(extra_vars)]


def build_command(
    settings: Settings,
    inventory: str | Path,
    playbook: str | Path,
    roles: str | Path,
    extra_vars: Mapping[str, Any] | None = None,
) -> list[str]:
    """Build the argv for one run.

    With settings.use_wsl the paths are converted to their WSL form and the
    whole invocation, environment assignments included, becomes a single
    ``bash -c`` argument.
    """
    if not settings.use_wsl:
        return [
            settings.ansible_playbook,
            "-i", str(inventory),
            str(playbook),
            *_extra_vars_args(extra_vars),
        ]

    assignments = dict(ANSIBLE_ENV)
    assignments["ANSIBLE_ROLES_PATH"] = to_wsl_path(roles)
    inner = [
        settings.ansible_playbook,
        "-i", to_wsl_path(inventory),
        to_wsl_path(playbook),
        *_extra_vars_args(extra_vars),
    ]
    env_part = " ".join(f"{k}={shlex.quote(v)}" for k, v in assignments.items())
    return [settings.wsl_command, "bash", "-c", f"{env_part} {shlex.join(inner)}"]


async def _deliver(callback: OutputCallback | None, text: str) -> None:
    if callback is None:
        return
    try:
        result = callback(text)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Output callback error: {e}")


class PlaybookExecutor:
    """Runs ansible-playbook for the deployment runner.

    Attributes:
        settings: Executable names, WSL switch and read chunk size

    Example:
        >>> executor = PlaybookExecutor(Settings())
        >>> outcome = await executor.execute(
        ...     get_run_kind("nfs"), inventory, playbook,
        ...     {"disk_device": "/dev/sdb"}, on_stdout=print,
        ... )
        >>> outcome.exit_code
        0
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def execute(
        self,
        strategy: RunKindStrategy,
        inventory_path: Path,
        playbook_path: Path,
        extra_vars: Mapping[str, Any] | None = None,
        on_stdout: OutputCallback | None = None,
        on_stderr: OutputCallback | None = None,
    ) -> ProcessOutcome:
        """Run the playbook to completion, streaming output to the callbacks.

        Raises:
            SpawnError: If the process cannot be started
        """
        roles = roles_path(self.settings, strategy)
        command = build_command(self.settings, inventory_path, playbook_path, roles, extra_vars)
        env = build_env(self.settings, roles)
        cwd = self.settings.ansible_dir if self.settings.ansible_dir.is_dir() else None

        logger.debug(f"Executing: {shlex.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=cwd,
            )
        except OSError as e:
            raise SpawnError(command[0], str(e)) from e

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        await asyncio.gather(
            self._pump(process.stdout, on_stdout, stdout_parts),
            self._pump(process.stderr, on_stderr, stderr_parts),
        )
        exit_code = await process.wait()
        logger.debug(f"ansible-playbook exited with code {exit_code}")

        return ProcessOutcome(
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            command=command,
        )

    async def _pump(
        self,
        stream: asyncio.StreamReader,
        callback: OutputCallback | None,
        sink: list[str],
    ) -> None:
        """Read a pipe to EOF in chunks, decoding UTF-8 across chunk edges."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(self.settings.chunk_size)
            text = decoder.decode(data, final=not data)
            if text:
                sink.append(text)
                await _deliver(callback, text)
            if not data:
                break
