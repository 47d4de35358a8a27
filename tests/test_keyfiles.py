"""Tests for ephemeral private key files."""

import stat
from pathlib import Path

from sbdeploy.keyfiles import KeyFileWriter
from sbdeploy.types import TargetHost


class TestKeyFileWriter:
    """Tests for KeyFileWriter."""

    def test_path_includes_run_id(self, tmp_path: Path):
        """Test file names embed the run id, a sanitized hostname and the port."""
        writer = KeyFileWriter(tmp_path, "run1")
        path = writer.path_for(TargetHost(hostname="10.0.0.5"))

        assert path == tmp_path / "ansible_key_run1_10_0_0_5_22.pem"

    def test_runs_do_not_collide(self, tmp_path: Path, key_host):
        """Test two runs against one host get different files."""
        first = KeyFileWriter(tmp_path, "aaaa").path_for(key_host)
        second = KeyFileWriter(tmp_path, "bbbb").path_for(key_host)
        assert first != second

    def test_write(self, tmp_path: Path, key_host, password_host):
        """Test only key hosts get files, with mode 0600 and a final newline."""
        writer = KeyFileWriter(tmp_path / "keys", "run1")
        paths = writer.write([password_host, key_host])

        assert list(paths) == [("10.0.0.6", 22)]
        path = paths[("10.0.0.6", 22)]
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert path.read_text() == key_host.private_key + "\n"

    def test_cleanup_is_idempotent(self, tmp_path: Path, key_host):
        """Test cleanup removes files once and tolerates repeats."""
        writer = KeyFileWriter(tmp_path, "run1")
        path = writer.write([key_host])[("10.0.0.6", 22)]

        assert writer.cleanup([key_host]) == 1
        assert not path.exists()
        assert writer.cleanup([key_host]) == 0

    def test_cleanup_leaves_other_runs(self, tmp_path: Path, key_host):
        """Test cleaning one run keeps another run's key for the same host."""
        mine = KeyFileWriter(tmp_path, "mine")
        theirs = KeyFileWriter(tmp_path, "theirs")
        mine.write([key_host])
        their_path = theirs.write([key_host])[("10.0.0.6", 22)]

        mine.cleanup([key_host])

        assert their_path.exists()

    def test_same_hostname_different_ports(self, tmp_path: Path):
        """Test two key hosts behind one address keep separate key files."""
        writer = KeyFileWriter(tmp_path, "run1")
        first = TargetHost(hostname="10.0.0.9", port=22, auth_mode="key", private_key="KEY-A")
        second = TargetHost(hostname="10.0.0.9", port=2222, auth_mode="key", private_key="KEY-B")

        paths = writer.write([first, second])

        assert paths[("10.0.0.9", 22)].read_text() == "KEY-A\n"
        assert paths[("10.0.0.9", 2222)].read_text() == "KEY-B\n"
        assert writer.cleanup([first, second]) == 2
