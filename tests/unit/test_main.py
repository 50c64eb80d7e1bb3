"""Unit tests for the wireftp command-line interface."""

from unittest.mock import MagicMock

import pytest

from wireftp.config.settings import ClientSettings, SettingsManager
from wireftp.main import Application, build_parser


@pytest.fixture
def settings_manager(temp_settings_file):
    """Settings stored in a temporary file."""
    return SettingsManager(config_path=temp_settings_file)


@pytest.fixture
def credentials():
    """Credential store that never touches the system keyring."""
    store = MagicMock()
    store.resolve_password.side_effect = lambda host, port, user, password=None: password or "secret"
    return store


@pytest.fixture
def run_cli(scripted_server, settings_manager, credentials):
    """Run one CLI invocation against the scripted server."""

    def run(*argv, host=True):
        prefix = ["--timeout", "2"]
        if host:
            prefix += ["--host", scripted_server.host, "--port", str(scripted_server.port), "--user", "alice"]
        args = build_parser().parse_args(prefix + list(argv))
        return Application(args, settings_manager, credentials).run()

    return run


class TestParser:
    """Tests for argument parsing."""

    def test_command_is_required(self):
        """Test argparse rejects a missing command."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_put_options(self):
        """Test put arguments and flags."""
        args = build_parser().parse_args(["put", "local.bin", "/remote.bin", "--mkdirs"])

        assert args.command == "put"
        assert args.local == "local.bin"
        assert args.remote == "/remote.bin"
        assert args.mkdirs is True


class TestCommands:
    """Tests for individual commands."""

    def test_put_and_get(self, run_cli, scripted_server, tmp_path, capsys):
        """Test uploading and downloading a local file."""
        source = tmp_path / "up.txt"
        source.write_bytes(b"payload")
        target = tmp_path / "down.txt"

        assert run_cli("put", str(source), "/a/b/up.txt", "--mkdirs") == 0
        assert scripted_server.files["/a/b/up.txt"] == b"payload"

        assert run_cli("get", "/a/b/up.txt", str(target)) == 0
        assert target.read_bytes() == b"payload"
        assert "(7 bytes)" in capsys.readouterr().out

    def test_ls_long(self, run_cli, scripted_server, capsys):
        """Test the parsed listing output."""
        scripted_server.dirs.add("/pub")
        scripted_server.files["/pub/readme.txt"] = b"12345"

        assert run_cli("ls", "-l", "/pub") == 0

        out = capsys.readouterr().out
        assert "readme.txt" in out
        assert "file" in out

    def test_mkdir_rm_and_rmdir(self, run_cli, scripted_server):
        """Test directory and file management commands."""
        scripted_server.files["/old/f.txt"] = b"x"

        assert run_cli("mkdir", "/n1/n2") == 0
        assert "/n1/n2" in scripted_server.dirs

        assert run_cli("rm", "/old/f.txt") == 0
        assert run_cli("rmdir", "/n1", "-r") == 0
        assert "/n1" not in scripted_server.dirs

    def test_mv_and_stat(self, run_cli, scripted_server, capsys):
        """Test rename and stat output."""
        scripted_server.files["/a.txt"] = b"abc"

        assert run_cli("mv", "/a.txt", "/b.txt") == 0
        assert run_cli("stat", "/b.txt") == 0

        out = capsys.readouterr().out
        assert "exists: True" in out
        assert "size: 3" in out

    def test_mdtm_and_site(self, run_cli, scripted_server, capsys):
        """Test MDTM and SITE output."""
        scripted_server.files["/a.txt"] = b"abc"

        assert run_cli("mdtm", "/a.txt") == 0
        assert run_cli("site", "HELP") == 0

        out = capsys.readouterr().out
        assert "2024-01-02T03:04:05+00:00" in out
        assert "Help OK" in out

    def test_remote_error_exit_code(self, run_cli, capsys):
        """Test server refusals are reported with exit code 1."""
        assert run_cli("rm", "/missing") == 1
        err = capsys.readouterr().err
        assert "550" in err
        assert "try again" not in err

    def test_transient_error_hint(self, run_cli, scripted_server, capsys):
        """Test 4xx refusals are reported as temporary."""
        scripted_server.replies["DELE"] = ["450 File busy"]

        assert run_cli("rm", "/busy") == 1
        err = capsys.readouterr().err
        assert "450" in err
        assert "try again" in err

    def test_put_mkdirs_relative_path(self, run_cli, scripted_server, tmp_path):
        """Test --mkdirs with a relative remote path under an existing directory."""
        scripted_server.dirs.add("/a")
        source = tmp_path / "up.txt"
        source.write_bytes(b"payload")

        assert run_cli("put", str(source), "a/b/up.txt", "--mkdirs") == 0
        assert scripted_server.files["/a/b/up.txt"] == b"payload"


class TestConnectionSettings:
    """Tests for remembered connection values and exit codes."""

    def test_missing_host(self, run_cli, capsys):
        """Test exit code 2 when no host is known."""
        assert run_cli("ls", host=False) == 2
        assert "--host" in capsys.readouterr().err

    def test_successful_connection_is_remembered(self, run_cli, scripted_server, settings_manager):
        """Test host, port and user are saved after login."""
        assert run_cli("ls") == 0

        saved = SettingsManager(config_path=settings_manager.config_path).load()
        assert saved.last_host == scripted_server.host
        assert saved.last_port == scripted_server.port
        assert saved.last_username == "alice"

    def test_remembered_host_is_used(self, run_cli, scripted_server, settings_manager):
        """Test the last connection is the default."""
        settings_manager.save(ClientSettings(
            last_host=scripted_server.host,
            last_port=scripted_server.port,
            last_username="alice",
        ))

        assert run_cli("ls", host=False) == 0
        assert scripted_server.commands[0] == "USER alice"

    def test_save_password(self, run_cli, scripted_server, credentials):
        """Test --save-password stores the password after login."""
        assert run_cli("--password", "secret", "--save-password", "ls") == 0

        credentials.save_password.assert_called_once_with(
            scripted_server.host, scripted_server.port, "alice", "secret"
        )

    def test_login_failure(self, run_cli, capsys):
        """Test a refused login exits with 1."""
        assert run_cli("--password", "wrong", "ls") == 1
        assert "Login refused" in capsys.readouterr().err
