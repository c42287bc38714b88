"""Read and write git's ``user.name`` / ``user.email`` through the git CLI."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from .errors import ExternalToolFailed, ExternalToolMissing
from .models import GitScope, GlobalGitConfig

logger = logging.getLogger("gitmt.git_identity")

GIT = "git"


def _run(cmd: list[str], cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    """Run a command and capture output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory, used for local-scope writes.

    Returns:
        CompletedProcess with stdout/stderr.

    Raises:
        ExternalToolMissing: The executable is not on PATH.
    """
    if shutil.which(cmd[0]) is None:
        raise ExternalToolMissing(cmd[0])
    try:
        return subprocess.run(cmd, capture_output=True, text=True, cwd=cwd)
    except FileNotFoundError as exc:
        raise ExternalToolMissing(cmd[0]) from exc


class GitIdentityApplier:
    """Applies an identity to git config at global or local scope."""

    def __init__(self, cwd: Optional[Path] = None):
        self.cwd = cwd

    def get(self, key: str, scope: GitScope = GitScope.GLOBAL) -> Optional[str]:
        """Read one config key, or None if it is unset."""
        result = _run([GIT, "config", f"--{scope.value}", "--get", key], cwd=self.cwd)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def read_global(self) -> Optional[GlobalGitConfig]:
        """Snapshot the global identity.

        Returns:
            GlobalGitConfig, or None when neither name nor email is set.
        """
        name = self.get("user.name")
        email = self.get("user.email")
        if name is None and email is None:
            return None
        return GlobalGitConfig(name=name, email=email)

    def apply(self, name: str, email: str, scope: GitScope = GitScope.GLOBAL) -> None:
        """Set ``user.name`` and ``user.email`` at ``scope``.

        Raises:
            ExternalToolMissing: git is not installed.
            ExternalToolFailed: git rejected the write (e.g. local scope
                outside a repository).
        """
        for key, value in (("user.name", name), ("user.email", email)):
            result = _run([GIT, "config", f"--{scope.value}", key, value], cwd=self.cwd)
            if result.returncode != 0:
                raise ExternalToolFailed(GIT, result.returncode, result.stderr)
        logger.info("Applied git identity %s <%s> (%s)", name, email, scope.value)
