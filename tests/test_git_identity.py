"""Tests for reading and writing git identity config.

git itself is never run: the module's command runner is mocked.
"""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, call, patch

import pytest

from gitmt.errors import ExternalToolFailed, ExternalToolMissing
from gitmt.git_identity import GitIdentityApplier
from gitmt.models import GitScope, GlobalGitConfig


def completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)


class TestReadGlobal:
    """Tests for snapshotting the global identity."""

    @patch("gitmt.git_identity._run")
    def test_both_keys_set(self, mock_run: MagicMock) -> None:
        """Name and email are read from the global scope."""
        mock_run.side_effect = [completed(stdout="Dev\n"), completed(stdout="dev@x.com\n")]
        assert GitIdentityApplier().read_global() == GlobalGitConfig(name="Dev", email="dev@x.com")
        assert mock_run.call_args_list[0].args[0] == ["git", "config", "--global", "--get", "user.name"]

    @patch("gitmt.git_identity._run")
    def test_nothing_set(self, mock_run: MagicMock) -> None:
        """git exits 1 for unset keys; that means no snapshot."""
        mock_run.return_value = completed(returncode=1)
        assert GitIdentityApplier().read_global() is None

    @patch("gitmt.git_identity._run")
    def test_only_name_set(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = [completed(stdout="Dev\n"), completed(returncode=1)]
        assert GitIdentityApplier().read_global() == GlobalGitConfig(name="Dev", email=None)


class TestApply:
    """Tests for writing user.name / user.email."""

    @patch("gitmt.git_identity._run")
    def test_global_scope(self, mock_run: MagicMock) -> None:
        mock_run.return_value = completed()
        GitIdentityApplier().apply("Jane Doe", "jane@x.com", GitScope.GLOBAL)
        assert mock_run.call_args_list == [
            call(["git", "config", "--global", "user.name", "Jane Doe"], cwd=None),
            call(["git", "config", "--global", "user.email", "jane@x.com"], cwd=None),
        ]

    @patch("gitmt.git_identity._run")
    def test_local_scope_uses_cwd(self, mock_run: MagicMock, tmp_path) -> None:
        mock_run.return_value = completed()
        GitIdentityApplier(cwd=tmp_path).apply("Jane Doe", "jane@x.com", GitScope.LOCAL)
        assert mock_run.call_args_list[0] == call(
            ["git", "config", "--local", "user.name", "Jane Doe"], cwd=tmp_path
        )

    @patch("gitmt.git_identity._run")
    def test_failure_raises(self, mock_run: MagicMock) -> None:
        """A rejected write (e.g. local scope outside a repo) is ExternalToolFailed."""
        mock_run.return_value = completed(returncode=128, stderr="fatal: not in a git directory")
        with pytest.raises(ExternalToolFailed, match="not in a git directory"):
            GitIdentityApplier().apply("Jane Doe", "jane@x.com", GitScope.LOCAL)
        assert mock_run.call_count == 1


class TestMissingGit:
    """Tests for git not being installed."""

    @patch("gitmt.git_identity.shutil.which", return_value=None)
    def test_apply_without_git(self, mock_which: MagicMock) -> None:
        with pytest.raises(ExternalToolMissing) as excinfo:
            GitIdentityApplier().apply("Jane Doe", "jane@x.com")
        assert excinfo.value.tool == "git"

    @patch("gitmt.git_identity.shutil.which", return_value=None)
    def test_read_without_git(self, mock_which: MagicMock) -> None:
        with pytest.raises(ExternalToolMissing):
            GitIdentityApplier().read_global()
