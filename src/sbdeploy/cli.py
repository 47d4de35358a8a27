"""Command-line interface for sbdeploy."""

import asyncio
import re
import sys
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from sbdeploy import __version__
from sbdeploy.config import Settings, load_settings
from sbdeploy.connectivity import DEFAULT_TIMEOUT, check_hosts
from sbdeploy.exceptions import DeployError
from sbdeploy.inventory import build_inventory
from sbdeploy.keyfiles import KeyFileWriter
from sbdeploy.logging import configure_logging, get_level_from_name, get_level_from_verbosity
from sbdeploy.progress import EventReporter, RunProgressDisplay, create_event_reporter
from sbdeploy.run_kinds import get_run_kind, list_run_kinds
from sbdeploy.runner import DeploymentRunner
from sbdeploy.targets import load_targets
from sbdeploy.types import ExecutionResult
from sbdeploy.validation import validate_request

_SECRET_VAR_RE = re.compile(r"\b(ansible_ssh_pass|ansible_become_pass)=\S+")
_SECRET_KEYS = ("password", "pass", "secret", "token")
MASK = "********"


def mask_inventory(text: str) -> str:
    """Replace password values in inventory text."""
    return _SECRET_VAR_RE.sub(lambda m: f"{m.group(1)}={MASK}", text)


def parse_extra_vars(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse repeated ``-e key=value`` options.

    Values are read as YAML scalars, so ``port=5672`` gives an int and
    ``enabled=true`` a bool.
    """
    result: dict[str, Any] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="-e")
        try:
            result[key.strip()] = yaml.safe_load(value) if value else ""
        except yaml.YAMLError:
            result[key.strip()] = value
    return result


def _load_settings(config: str | None) -> Settings:
    try:
        return load_settings(config)
    except DeployError as e:
        raise click.ClickException(str(e))


def _credentials_table(result: ExecutionResult, show_secrets: bool) -> Table:
    table = Table(title="Credentials")
    table.add_column("Service")
    table.add_column("Key")
    table.add_column("Value")
    for service, values in result.credentials.items():
        for key, value in values.items():
            hidden = not show_secrets and any(s in key.lower() for s in _SECRET_KEYS)
            table.add_row(service, key, MASK if hidden else value)
    return table


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """sbdeploy - run StackBill provisioning playbooks against target hosts."""
    if version:
        click.echo(f"sbdeploy {__version__}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("kinds")
def kinds() -> None:
    """List run kinds with their playbooks and host groups."""
    for strategy in list_run_kinds():
        extras = []
        if strategy.aggregate:
            extras.append(f"aggregate={strategy.aggregate}")
        if strategy.credential_service:
            extras.append(f"credentials={strategy.credential_service}")
        suffix = f"  ({', '.join(extras)})" if extras else ""
        click.echo(f"{strategy.name:<14} {strategy.playbook}{suffix}")


@cli.command("inventory")
@click.argument("kind")
@click.option("--targets", "-t", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Target file (YAML or JSON)")
@click.option("--mask/--no-mask", default=True, help="Mask passwords (default: on)")
@click.option("--config", "config", default=None, help="Settings file")
def inventory(kind: str, targets: str, mask: bool, config: str | None) -> None:
    """Print the inventory a run of KIND would use.

    Key files are shown at the path they would be written to; nothing is
    written.

    Examples:
        sbdeploy inventory mysql -t targets.yml

        sbdeploy inventory kubernetes -t cluster.yml --no-mask
    """
    settings = _load_settings(config)
    try:
        strategy = get_run_kind(kind)
        target_file = load_targets(targets)
    except DeployError as e:
        raise click.ClickException(str(e))

    writer = KeyFileWriter(settings.key_dir, "preview")
    key_paths = {h.address: writer.path_for(h) for h in target_file.hosts if h.uses_key}
    text = build_inventory(target_file.hosts, strategy, key_paths, settings)
    click.echo(mask_inventory(text) if mask else text, nl=False)


@cli.command("run")
@click.argument("kind")
@click.option("--targets", "-t", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Target file (YAML or JSON)")
@click.option("--extra-var", "-e", "extra_vars", multiple=True,
              help="Playbook variable as key=value (repeatable)")
@click.option("--playbook", default=None, help="Playbook to run instead of the kind's default")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
              help="Progress output format")
@click.option("--config", "config", default=None, help="Settings file")
@click.option("--show-secrets", is_flag=True, help="Print generated credentials unmasked")
@click.option("--quiet", "-q", is_flag=True, help="No progress output; credentials and exit status only")
@click.option("--log-file", default=None, help="Also write logs to this file")
@click.option("--log-level", type=click.Choice(["trace", "debug", "info", "warning", "error"]),
              default=None, help="Set log level explicitly (overrides -v)")
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v, -vv, -vvv)")
def run(
    kind: str,
    targets: str,
    extra_vars: tuple[str, ...],
    playbook: str | None,
    output_format: str,
    config: str | None,
    show_secrets: bool,
    quiet: bool,
    log_file: str | None,
    log_level: str | None,
    verbose: int,
) -> None:
    """Run the playbook of KIND against the hosts in a target file.

    Progress is drawn live on a terminal and written as plain lines
    otherwise. Exits with status 1 when the run fails.

    Examples:
        sbdeploy run mysql -t targets.yml

        sbdeploy run nfs -t nfs.yml -e disk_device=/dev/sdb -e client_ip_range=10.0.0.0/24

        sbdeploy run env-check -t all.yml --format json
    """
    level = get_level_from_name(log_level) if log_level else get_level_from_verbosity(verbose)
    configure_logging(level=level, log_file=log_file)
    settings = _load_settings(config)

    try:
        target_file = load_targets(targets)
        variables = {**target_file.variables, **parse_extra_vars(extra_vars)}
        validate_request(kind, target_file.hosts, variables)
    except DeployError as e:
        raise click.ClickException(str(e))

    runner = DeploymentRunner(settings)
    hosts = target_file.hosts

    async def execute(reporter: EventReporter) -> ExecutionResult:
        reporter.on_run_start(kind, hosts)
        return await runner.run(kind, hosts, variables, on_event=reporter, playbook=playbook)

    json_format = output_format == "json"
    reporter: EventReporter
    if not json_format and not quiet and Console(stderr=True).is_terminal:
        reporter = RunProgressDisplay()
    else:
        reporter = create_event_reporter(not quiet, json_format=json_format)

    with reporter:
        result = asyncio.run(execute(reporter))
    reporter.on_run_complete(result)
    if not json_format and result.credentials:
        Console().print(_credentials_table(result, show_secrets))

    if not result.success:
        sys.exit(1)


@cli.command("test-ssh")
@click.option("--targets", "-t", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Target file (YAML or JSON)")
@click.option("--timeout", default=DEFAULT_TIMEOUT, help="Connection timeout in seconds")
def test_ssh(targets: str, timeout: int) -> None:
    """Test SSH logins to every host in a target file.

    Examples:
        sbdeploy test-ssh -t targets.yml

        sbdeploy test-ssh -t targets.yml --timeout 5
    """
    try:
        target_file = load_targets(targets)
    except DeployError as e:
        raise click.ClickException(str(e))

    if not target_file.hosts:
        click.echo("No hosts found in target file")
        return

    click.echo(f"\nTesting SSH connectivity to {len(target_file.hosts)} host(s)...\n")
    results = asyncio.run(check_hosts(target_file.hosts, timeout))

    failed = 0
    for result in results:
        if result.ok:
            click.echo(f"  {result.label}: OK")
        else:
            click.echo(f"  {result.label}: FAILED - {result.message}")
            failed += 1

    click.echo(f"\nResults: {len(results) - failed} passed, {failed} failed")
    if failed:
        raise click.ClickException(f"{failed} host(s) failed SSH connectivity test")


def main() -> None:
    """Package entry point for the sbdeploy command-line interface."""
    cli()


if __name__ == "__main__":
    cli()
