"""Tests for target file loading."""

import json
from pathlib import Path

import pytest

from sbdeploy.exceptions import ValidationError
from sbdeploy.targets import load_targets, parse_targets
from sbdeploy.types import AuthMode


class TestLoadTargets:
    """Tests for load_targets."""

    def test_yaml_list(self, tmp_path: Path):
        """Test a bare list of hosts."""
        path = tmp_path / "targets.yml"
        path.write_text(
            "- hostname: 10.0.0.5\n"
            "  role: primary\n"
            "  password: s3cret\n"
            "- hostname: 10.0.0.6\n"
            "  role: secondary\n"
        )

        targets = load_targets(path)

        assert [h.hostname for h in targets.hosts] == ["10.0.0.5", "10.0.0.6"]
        assert targets.hosts[0].password == "s3cret"
        assert targets.variables == {}

    def test_json_request_body(self, tmp_path: Path):
        """Test a request-shaped JSON document with variables."""
        path = tmp_path / "targets.json"
        path.write_text(json.dumps({
            "servers": [{
                "hostname": "10.0.0.7",
                "ssh_auth_type": "key",
                "ssh_key": "KEY",
                "ssh_user_type": "sudo",
            }],
            "variables": {"disk_device": "/dev/sdb"},
        }))

        targets = load_targets(path)

        assert targets.hosts[0].auth_mode is AuthMode.KEY
        assert targets.hosts[0].is_elevated
        assert targets.variables == {"disk_device": "/dev/sdb"}

    def test_hosts_key(self):
        """Test 'hosts' is accepted in place of 'servers'."""
        assert parse_targets({"hosts": [{"hostname": "a"}]}).hosts[0].hostname == "a"

    def test_missing_file(self, tmp_path: Path):
        """Test unreadable files raise ValidationError."""
        with pytest.raises(ValidationError, match="Cannot read"):
            load_targets(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        """Test parse errors raise ValidationError."""
        path = tmp_path / "bad.yml"
        path.write_text("servers: [unclosed\n")

        with pytest.raises(ValidationError, match="Invalid target file"):
            load_targets(path)


class TestParseTargets:
    """Tests for document shape checks."""

    @pytest.mark.parametrize("document,message", [
        ("just a string", "expected a list of hosts"),
        ({"servers": "a"}, "servers must be a list"),
        ({"variables": {}}, "servers must be a list"),
        ({"servers": [], "variables": ["x"]}, "variables must be a mapping"),
        (["10.0.0.5"], "server 1 must be a mapping"),
        ([{"role": "primary"}], "Server 1: hostname is required"),
        ([{"hostname": "a", "auth_mode": "kerberos"}], "Server 1:"),
    ])
    def test_invalid_documents(self, document, message):
        """Test each unsupported shape is rejected with a clear message."""
        with pytest.raises(ValidationError, match=message):
            parse_targets(document)
