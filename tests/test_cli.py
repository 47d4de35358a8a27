"""Test CLI functionality."""

import json
import sys
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from sbdeploy import __version__
from sbdeploy.cli import cli, mask_inventory, parse_extra_vars

TARGETS = """
servers:
  - hostname: 10.0.0.5
    role: primary
    password: s3cret
  - hostname: 10.0.0.6
    role: secondary
    ssh_auth_type: key
    ssh_key: KEYDATA
    ssh_user_type: sudo
    sudo_password: su-pass
"""


@pytest.fixture
def targets_file(tmp_path: Path) -> Path:
    path = tmp_path / "targets.yml"
    path.write_text(TARGETS)
    return path


@pytest.fixture
def config_file(tmp_path: Path, settings, fake_ansible) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(json.dumps({
        "ansible_dir": str(settings.ansible_dir),
        "inventory_dir": str(settings.inventory_dir),
        "key_dir": str(settings.key_dir),
        "ansible_playbook": str(fake_ansible.path),
        "use_wsl": False,
    }))
    return path


def test_cli_version():
    """Test CLI version output."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_help():
    """Test CLI help output."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "inventory", "kinds", "test-ssh"):
        assert command in result.output


def test_cli_run_requires_targets():
    """Test run fails without a target file."""
    runner = CliRunner()
    result = runner.invoke(cli, ["run", "mysql"])
    assert result.exit_code != 0


def test_kinds():
    """Test the run kind listing."""
    runner = CliRunner()
    result = runner.invoke(cli, ["kinds"])

    assert result.exit_code == 0
    assert "kubectl-istio/playbook.yml" in result.output
    assert "aggregate=mysql" in result.output
    assert "credentials=rabbitmq" in result.output


class TestHelpers:
    """Tests for CLI helper functions."""

    def test_parse_extra_vars(self):
        """Test key=value parsing with YAML scalars."""
        assert parse_extra_vars(("disk_device=/dev/sdb", "port=5672", "tls=true", "empty=", "eq=a=b")) == {
            "disk_device": "/dev/sdb",
            "port": 5672,
            "tls": True,
            "empty": "",
            "eq": "a=b",
        }

    def test_parse_extra_vars_invalid(self):
        """Test items without '=' are rejected."""
        with pytest.raises(click.BadParameter):
            parse_extra_vars(("novalue",))

    def test_mask_inventory(self):
        """Test passwords are masked in inventory text."""
        text = "h ansible_ssh_pass=abc ansible_become=yes ansible_become_pass=def\n"
        assert mask_inventory(text) == (
            "h ansible_ssh_pass=******** ansible_become=yes ansible_become_pass=********\n"
        )


class TestInventoryCommand:
    """Tests for sbdeploy inventory."""

    def test_masked_by_default(self, targets_file):
        """Test the rendered inventory hides passwords."""
        runner = CliRunner()
        result = runner.invoke(cli, ["inventory", "mysql", "-t", str(targets_file)])

        assert result.exit_code == 0, result.output
        assert "[mysql:children]" in result.output
        assert "s3cret" not in result.output
        assert "su-pass" not in result.output
        assert "KEYDATA" not in result.output
        assert "ansible_key_preview_10_0_0_6_22.pem" in result.output

    def test_no_mask(self, targets_file):
        """Test --no-mask shows passwords."""
        runner = CliRunner()
        result = runner.invoke(cli, ["inventory", "mysql", "-t", str(targets_file), "--no-mask"])
        assert "ansible_ssh_pass=s3cret" in result.output

    def test_unknown_kind(self, targets_file):
        """Test an unknown kind is a usage error."""
        runner = CliRunner()
        result = runner.invoke(cli, ["inventory", "postgres", "-t", str(targets_file)])

        assert result.exit_code == 1
        assert "Unknown run kind: postgres" in result.output


@pytest.mark.skipif(sys.platform == "win32", reason="fake ansible-playbook is a POSIX script")
class TestRunCommand:
    """Tests for sbdeploy run."""

    def test_json_run(self, targets_file, config_file, fake_ansible):
        """Test NDJSON output of a successful run."""
        fake_ansible.configure(
            stdout='TASK [creds] ***\nok: [mysql-primary-0] => {"msg": "CREDENTIALS|mysql|password=pw"}\n',
        )
        runner = CliRunner()
        result = runner.invoke(cli, [
            "run", "mysql", "-t", str(targets_file), "--config", str(config_file), "--format", "json",
        ])

        assert result.exit_code == 0, result.output
        records = [json.loads(line) for line in result.output.splitlines() if line.startswith("{")]
        assert [r["type"] for r in records] == ["start", "task", "task_result", "complete"]
        assert records[-1]["success"] is True
        assert records[-1]["credentials"]["mysql"]["password"] == "pw"

    def test_failed_run_exits_one(self, targets_file, config_file, fake_ansible):
        """Test a failing engine gives exit status 1."""
        fake_ansible.configure(stdout="fatal: [mysql-primary-0]: FAILED!\n", exit_code=2)
        runner = CliRunner()
        result = runner.invoke(cli, [
            "run", "mysql", "-t", str(targets_file), "--config", str(config_file), "--format", "json",
        ])

        assert result.exit_code == 1
        assert '"error": "One or more tasks failed"' in result.output

    def test_text_run_masks_credentials(self, targets_file, config_file, fake_ansible):
        """Test the text display masks generated passwords."""
        fake_ansible.configure(stdout='ok: [mysql-primary-0] => {"msg": "MySQL password: topsecret"}\n')
        runner = CliRunner()
        result = runner.invoke(cli, ["run", "mysql", "-t", str(targets_file), "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "topsecret" not in result.output
        assert "********" in result.output

    def test_plain_progress_off_terminal(self, targets_file, config_file, fake_ansible, monkeypatch):
        """Test text format writes plain progress lines when not on a terminal."""
        monkeypatch.delenv("FORCE_COLOR", raising=False)
        monkeypatch.delenv("TTY_COMPATIBLE", raising=False)
        fake_ansible.configure(stdout="TASK [ping] ***\nok: [mysql-primary-0]\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["run", "mysql", "-t", str(targets_file), "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Running mysql on 2 host(s)..." in result.output
        assert "  TASK ping" in result.output
        assert "    ok: mysql-primary-0" in result.output
        assert "Completed mysql in" in result.output

    def test_quiet(self, targets_file, config_file, fake_ansible):
        """Test --quiet suppresses progress records."""
        fake_ansible.configure(stdout="TASK [ping] ***\nok: [server-0]\n")
        runner = CliRunner()
        result = runner.invoke(cli, [
            "run", "env-check", "-t", str(targets_file), "--config", str(config_file),
            "--format", "json", "--quiet",
        ])

        assert result.exit_code == 0, result.output
        assert not [line for line in result.output.splitlines() if line.startswith("{")]

    def test_log_level_overrides_verbosity(self, targets_file, config_file, fake_ansible):
        """Test --log-level sets the console level regardless of -v."""
        runner = CliRunner()
        result = runner.invoke(cli, [
            "run", "env-check", "-t", str(targets_file), "--config", str(config_file),
            "--format", "json", "-v", "--log-level", "debug",
        ])

        assert result.exit_code == 0, result.output
        assert "Executing:" in result.output

    def test_extra_vars_passed(self, targets_file, config_file, fake_ansible):
        """Test -e values reach the engine as JSON."""
        runner = CliRunner()
        result = runner.invoke(cli, [
            "run", "nfs", "-t", str(targets_file), "--config", str(config_file), "--format", "json",
            "-e", "disk_device=/dev/sdb", "-e", "client_ip_range=10.0.0.0/24",
        ])

        assert result.exit_code == 0, result.output
        argv = fake_ansible.invocation["argv"]
        assert json.loads(argv[argv.index("-e") + 1]) == {
            "disk_device": "/dev/sdb",
            "client_ip_range": "10.0.0.0/24",
        }

    def test_validation_failure(self, targets_file, config_file, fake_ansible):
        """Test invalid requests fail before the engine runs."""
        runner = CliRunner()
        result = runner.invoke(cli, [
            "run", "nfs", "-t", str(targets_file), "--config", str(config_file),
        ])

        assert result.exit_code == 1
        assert "disk_device and client_ip_range are required" in result.output
        assert not fake_ansible.record_path.exists()


class TestTestSsh:
    """Tests for sbdeploy test-ssh."""

    def test_no_hosts(self, tmp_path: Path):
        """Test an empty target list."""
        path = tmp_path / "empty.yml"
        path.write_text("servers: []\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["test-ssh", "-t", str(path)])

        assert result.exit_code == 0
        assert "No hosts found" in result.output

    def test_results(self, targets_file, monkeypatch):
        """Test per-host results and the failure exit."""
        from sbdeploy import cli as cli_module
        from sbdeploy.connectivity import ConnectivityResult

        async def fake_check_hosts(hosts, timeout):
            return [
                ConnectivityResult(hosts[0], True, "OK"),
                ConnectivityResult(hosts[1], False, "Connection refused"),
            ]

        monkeypatch.setattr(cli_module, "check_hosts", fake_check_hosts)
        runner = CliRunner()
        result = runner.invoke(cli, ["test-ssh", "-t", str(targets_file), "--timeout", "2"])

        assert result.exit_code == 1
        assert "10.0.0.5 (10.0.0.5:22): OK" in result.output
        assert "10.0.0.6 (10.0.0.6:22): FAILED - Connection refused" in result.output
        assert "Results: 1 passed, 1 failed" in result.output
