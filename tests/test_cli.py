"""Tests for the gitmt CLI via CliRunner.

git is mocked at the module runner; ssh-keygen is replaced by the
fake_keygen fixture where a key is generated.
"""

from __future__ import annotations

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from gitmt import __version__
from gitmt.cli import main


@pytest.fixture(autouse=True)
def git_run():
    """Every git invocation succeeds with empty output."""
    with patch("gitmt.git_identity._run") as mock_run:
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        yield mock_run


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, gitmt_home):
    """Invoke a gitmt command against the temporary home."""

    def _invoke(*args, input=None):
        return runner.invoke(main, [*args, "--home", str(gitmt_home)], input=input)

    return _invoke


@pytest.fixture
def two_users(invoke):
    invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "-a", "jane", input="n\n")
    invoke("add", "-n", "John Roe", "-e", "john@x.com", "-a", "john", input="n\n")


def read_registry(gitmt_home):
    return json.loads((gitmt_home / "config.json").read_text())


class TestMain:
    """Test the command group."""

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("add", "current", "remove", "change", "list", "global", "key"):
            assert command in result.output


class TestAddCommand:
    """Test gitmt add."""

    def test_add_first_user(self, invoke, gitmt_home, ssh_dir, git_run):
        result = invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "-a", "jane", input="n\n")
        assert result.exit_code == 0, result.output
        assert "Added user Jane Doe (ID: 1)" in result.output

        data = read_registry(gitmt_home)
        assert data["activeUser"] == 1
        assert data["users"][0]["alias"] == "jane"
        assert "Host github.com-jane" in (ssh_dir / "config").read_text()

        written = [c.args[0] for c in git_run.call_args_list if "--get" not in c.args[0]]
        assert ["git", "config", "--global", "user.name", "Jane Doe"] in written
        assert ["git", "config", "--global", "user.email", "jane@x.com"] in written

    def test_alias_defaults_to_name(self, invoke, gitmt_home):
        invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", input="n\n")
        assert read_registry(gitmt_home)["users"][0]["alias"] == "jane_doe"

    def test_alias_from_accented_name(self, invoke, gitmt_home, ssh_dir):
        result = invoke("add", "-n", "José Díaz", "-e", "jose@x.com", input="n\n")
        assert result.exit_code == 0, result.output
        assert read_registry(gitmt_home)["users"][0]["alias"] == "jose_diaz"
        assert "Host github.com-jose_diaz" in (ssh_dir / "config").read_text()

    def test_alias_from_name_with_apostrophe(self, invoke, gitmt_home):
        result = invoke("add", "-n", "Jane O'Neil", "-e", "jane@x.com", input="n\n")
        assert result.exit_code == 0, result.output
        assert read_registry(gitmt_home)["users"][0]["alias"] == "jane_o_neil"

    def test_local_flag(self, invoke, git_run):
        invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "--local", input="n\n")
        written = [c.args[0] for c in git_run.call_args_list if "--get" not in c.args[0]]
        assert ["git", "config", "--local", "user.name", "Jane Doe"] in written

    def test_generate_key(self, invoke, ssh_dir, keygen):
        result = invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "-a", "jane", input="y\n")
        assert result.exit_code == 0, result.output
        assert (ssh_dir / "id_rsa_gitmt_jane").exists()
        keygen.assert_called_once()

    def test_duplicate_alias(self, invoke, two_users, gitmt_home):
        """A taken alias is reported and exits 0 without changes."""
        before = (gitmt_home / "config.json").read_bytes()
        result = invoke("add", "-n", "Jane Two", "-e", "j2@x.com", "-a", "jane", input="n\n")
        assert result.exit_code == 0
        assert "already in use" in result.output
        assert (gitmt_home / "config.json").read_bytes() == before

    def test_invalid_alias(self, invoke):
        result = invoke("add", "-n", "Jane", "-e", "jane@x.com", "-a", "has space")
        assert result.exit_code == 1
        assert "Invalid alias" in result.output

    def test_missing_email(self, invoke):
        result = invoke("add", "-n", "Jane")
        assert result.exit_code != 0

    def test_step_failure_exits_nonzero(self, invoke, ssh_dir):
        """A failed SSH config write reports the failing and completed steps."""
        (ssh_dir / "config").mkdir()
        result = invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "-a", "jane", input="n\n")
        assert result.exit_code == 1
        assert "ssh-alias" in result.output
        assert "Completed: ensure-key, register, activate" in result.output


class TestCurrentCommand:
    """Test gitmt current."""

    def test_no_active(self, invoke):
        result = invoke("current")
        assert result.exit_code == 0
        assert "No active git user" in result.output

    def test_active(self, invoke, two_users):
        result = invoke("current")
        assert "Current active user: Jane Doe <jane@x.com> (ID: 1)" in result.output


class TestListCommand:
    """Test gitmt list."""

    def test_empty(self, invoke):
        result = invoke("list")
        assert result.exit_code == 0
        assert "No users configured" in result.output

    def test_lists_users(self, invoke, two_users):
        result = invoke("list")
        assert result.exit_code == 0
        assert "Jane Doe" in result.output
        assert "John Roe" in result.output
        assert "(active)" in result.output

    def test_json_out(self, invoke, two_users):
        result = invoke("list", "--json-out")
        data = json.loads(result.output)
        assert [u["id"] for u in data["users"]] == [1, 2]
        assert data["activeUser"] == 1


class TestChangeCommand:
    """Test gitmt change."""

    def test_change(self, invoke, two_users, gitmt_home):
        result = invoke("change", "2")
        assert result.exit_code == 0
        assert "Switched to user: John Roe <john@x.com>" in result.output
        assert read_registry(gitmt_home)["activeUser"] == 2

    def test_change_missing(self, invoke, two_users):
        result = invoke("change", "9")
        assert result.exit_code == 0
        assert "No user found with ID 9" in result.output


class TestRemoveCommand:
    """Test gitmt remove."""

    def test_remove_active(self, invoke, two_users, gitmt_home, ssh_dir):
        result = invoke("remove", "1")
        assert result.exit_code == 0
        assert "Removed user Jane Doe (ID: 1)" in result.output

        data = read_registry(gitmt_home)
        assert data["activeUser"] is None
        assert [u["id"] for u in data["users"]] == [2]
        ssh_text = (ssh_dir / "config").read_text()
        assert "github.com-jane\n" not in ssh_text
        assert "Host github.com-john" in ssh_text

    def test_remove_missing(self, invoke, two_users, gitmt_home):
        """Unknown id: message, exit 0, registry unchanged."""
        before = (gitmt_home / "config.json").read_bytes()
        result = invoke("remove", "5")
        assert result.exit_code == 0
        assert "No user found with ID 5" in result.output
        assert (gitmt_home / "config.json").read_bytes() == before

    def test_remove_confirms_key_deletion(self, invoke, gitmt_home, ssh_dir, keygen):
        invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "-a", "jane", input="y\n")
        result = invoke("remove", "1", input="y\n")
        assert result.exit_code == 0
        assert "remove the SSH keys" in result.output
        assert not (ssh_dir / "id_rsa_gitmt_jane").exists()


class TestKeyCommand:
    """Test gitmt key."""

    def test_no_key(self, invoke, two_users):
        result = invoke("key", "1")
        assert result.exit_code == 0
        assert "No SSH key found for user Jane Doe" in result.output

    def test_shows_key(self, invoke, two_users, ssh_dir):
        (ssh_dir / "id_rsa_gitmt_jane.pub").write_text("ssh-rsa AAAAtest jane@x.com\n")
        result = invoke("key", "1")
        assert "Public SSH key for Jane Doe:" in result.output
        assert "ssh-rsa AAAAtest jane@x.com" in result.output

    def test_unknown_id(self, invoke, two_users):
        result = invoke("key", "3")
        assert result.exit_code == 0
        assert "No user found with ID 3" in result.output


class TestGlobalCommand:
    """Test gitmt global."""

    def test_nothing_saved(self, invoke):
        result = invoke("global")
        assert "No saved global git config" in result.output

    def test_saved(self, invoke, gitmt_home):
        (gitmt_home / "config.json").write_text(json.dumps({
            "users": [], "activeUser": None,
            "globalConfig": {"name": "Original Dev", "email": "dev@example.com"},
        }))
        result = invoke("global")
        assert "Saved global git config:" in result.output
        assert "Name: Original Dev" in result.output
        assert "Email: dev@example.com" in result.output


class TestReadOnlyCommands:
    """Read-only commands never change the registry file."""

    def test_registry_bytes_stable(self, invoke, two_users, gitmt_home):
        before = (gitmt_home / "config.json").read_bytes()
        for args in (("list",), ("current",), ("global",), ("key", "1"), ("key", "2"), ("list",)):
            result = invoke(*args)
            assert result.exit_code == 0
        assert (gitmt_home / "config.json").read_bytes() == before


class TestCorruptRegistry:
    """Test handling of an unparseable registry."""

    def test_exits_with_error(self, invoke, gitmt_home):
        (gitmt_home / "config.json").write_text("{not json")
        result = invoke("list")
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_non_utf8_exits_with_error(self, invoke, gitmt_home):
        (gitmt_home / "config.json").write_bytes(b'{"users": [], "x": "\xff\xfe"}')
        result = invoke("current")
        assert result.exit_code == 1
        assert "Error" in result.output


class TestConfigFile:
    """Test config.yaml handling through the runtime."""

    def test_custom_host(self, invoke, gitmt_home, ssh_dir):
        (gitmt_home / "config.yaml").write_text(f"ssh_dir: {ssh_dir}\nhost: gitlab.com\n")
        invoke("add", "-n", "Jane Doe", "-e", "jane@x.com", "-a", "jane", input="n\n")
        assert "Host gitlab.com-jane" in (ssh_dir / "config").read_text()
