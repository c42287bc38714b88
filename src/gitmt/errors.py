"""Error taxonomy shared by the stores and the synchronization engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .engine import OperationReport


class GitmtError(Exception):
    """Base class for every error gitmt raises on purpose."""


class CorruptConfig(GitmtError):
    """Raised when the registry file exists but cannot be parsed."""


class IOFailure(GitmtError):
    """Raised when a registry, SSH config, or key file cannot be read, written, or deleted."""


class NotFound(GitmtError):
    """Raised when an identity id does not exist in the registry."""

    def __init__(self, user_id: int):
        super().__init__(f"No user found with ID {user_id}")
        self.user_id = user_id


class AliasInUse(GitmtError):
    """Raised when adding an identity whose alias is already registered."""

    def __init__(self, alias: str):
        super().__init__(f"Alias '{alias}' is already in use")
        self.alias = alias


class ExternalToolMissing(GitmtError):
    """Raised when git or ssh-keygen is not on PATH."""

    def __init__(self, tool: str):
        super().__init__(f"Required tool not found on PATH: {tool}")
        self.tool = tool


class ExternalToolFailed(GitmtError):
    """Raised when git or ssh-keygen exits non-zero."""

    def __init__(self, tool: str, returncode: int, stderr: str = ""):
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"{tool} failed: {detail}")
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


class StepFailed(GitmtError):
    """Raised when a step of a multi-store operation fails.

    Steps that completed before the failure are left in place. The
    attached report says which ones they were and can roll them back.

    Attributes:
        step: Name of the step that failed.
        report: The operation report up to and including the failure.
    """

    def __init__(self, step: str, report: Optional["OperationReport"], cause: Exception):
        super().__init__(f"Step '{step}' failed: {cause}")
        self.step = step
        self.report = report
        self.cause = cause
