"""
Synchronization engine: keeps the registry, SSH aliases, and git identity in step.

Every mutating operation is planned as an ordered list of steps. Each
step touches one store and may carry a compensating action that undoes
it. Steps run in order against durable state:

    add     ensure-key -> register -> activate* -> ssh-alias -> persist
    change  activate -> persist
    remove  remove-key~ -> ssh-alias~ -> unregister -> persist

    * only when no identity is active yet
    ~ best-effort: a failure is logged and the next step still runs

Nothing is rolled back automatically. A failing step that is not
best-effort stops the operation and raises StepFailed; the report on
the exception says exactly which steps completed, and its rollback()
runs their compensations in reverse if the caller wants that.

The registry is a value: each operation works on a deep copy of the
registry it was given and hands the new one back in its result.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from .errors import AliasInUse, GitmtError, NotFound, StepFailed
from .git_identity import GitIdentityApplier
from .keys import Confirm, KeyManager
from .models import GitScope, GlobalGitConfig, Identity, Registry
from .registry import RegistryStore
from .ssh_config import SSHAliasStore

logger = logging.getLogger("gitmt.engine")

_ALIAS_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class StepStatus(str, Enum):
    """What happened to a planned step."""

    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Step:
    """One store mutation within an operation.

    Attributes:
        name: Short step name used in logs and reports.
        action: Performs the mutation.
        compensate: Undoes the mutation, if it can be undone.
        best_effort: Keep going with later steps if this one fails.
    """

    name: str
    action: Callable[[], None]
    compensate: Optional[Callable[[], None]] = None
    best_effort: bool = False


@dataclass
class StepOutcome:
    name: str
    status: StepStatus
    error: Optional[Exception] = None


@dataclass
class OperationReport:
    """Per-step record of one operation run."""

    operation: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    _undo: list[tuple[str, Callable[[], None]]] = field(default_factory=list, repr=False)

    @property
    def completed(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == StepStatus.DONE]

    @property
    def failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.status == StepStatus.FAILED]

    @property
    def skipped(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == StepStatus.SKIPPED]

    @property
    def ok(self) -> bool:
        return not self.failures

    def rollback(self) -> list[str]:
        """Run compensations of completed steps, newest first.

        A compensation that fails is logged and the remaining ones
        still run.

        Returns:
            list[str]: Names of the steps that were compensated.
        """
        undone = []
        while self._undo:
            name, compensate = self._undo.pop()
            try:
                compensate()
            except (GitmtError, OSError) as exc:
                logger.error(
                    "%s: rollback of %s failed: %s", self.operation, name, exc,
                    extra={"operation": self.operation, "step": name, "status": "rollback-failed"},
                )
                continue
            logger.info(
                "%s: rolled back %s", self.operation, name,
                extra={"operation": self.operation, "step": name, "status": "rolled-back"},
            )
            undone.append(name)
        return undone


@dataclass
class OperationResult:
    """Outcome of a successful (or best-effort) engine operation."""

    registry: Registry
    report: OperationReport
    identity: Optional[Identity] = None


def run_steps(operation: str, steps: list[Step]) -> OperationReport:
    """Execute ``steps`` in order and record what happened to each.

    Raises:
        StepFailed: A step that is not best-effort failed. Later steps
            are recorded as skipped.
    """
    report = OperationReport(operation=operation)
    for index, step in enumerate(steps):
        try:
            step.action()
        except GitmtError as exc:
            report.outcomes.append(StepOutcome(step.name, StepStatus.FAILED, exc))
            logger.error(
                "%s: step %s failed: %s", operation, step.name, exc,
                extra={"operation": operation, "step": step.name, "status": "failed"},
            )
            if step.best_effort:
                continue
            for rest in steps[index + 1:]:
                report.outcomes.append(StepOutcome(rest.name, StepStatus.SKIPPED))
            raise StepFailed(step.name, report, exc) from exc

        report.outcomes.append(StepOutcome(step.name, StepStatus.DONE))
        if step.compensate is not None:
            report._undo.append((step.name, step.compensate))
        logger.debug(
            "%s: step %s done", operation, step.name,
            extra={"operation": operation, "step": step.name, "status": "done"},
        )
    return report


class SyncEngine:
    """Orchestrates add/change/remove across the three stores.

    Args:
        registry_store: Persists the registry.
        aliases: SSH config alias stanzas.
        keys: SSH key material.
        git: git identity reader/writer.
        confirm: Prompt callback for key generation and deletion.
    """

    def __init__(
        self,
        registry_store: RegistryStore,
        aliases: SSHAliasStore,
        keys: KeyManager,
        git: GitIdentityApplier,
        confirm: Confirm,
    ):
        self.registry_store = registry_store
        self.aliases = aliases
        self.keys = keys
        self.git = git
        self.confirm = confirm

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def add(
        self,
        registry: Registry,
        name: str,
        email: str,
        alias: str,
        scope: GitScope = GitScope.GLOBAL,
    ) -> OperationResult:
        """Register a new identity.

        The first identity added to a registry with no active user
        becomes active and is applied to git at ``scope``.

        Raises:
            ValueError: ``alias`` is not usable as a host alias suffix.
            AliasInUse: Another identity already has ``alias``.
            StepFailed: A step failed; earlier steps stay applied.
        """
        if not _ALIAS_PATTERN.fullmatch(alias):
            raise ValueError(f"Invalid alias '{alias}': use letters, digits, '.', '_' or '-'")
        if registry.find_by_alias(alias) is not None:
            raise AliasInUse(alias)

        registry = registry.model_copy(deep=True)
        identity = Identity(
            id=registry.next_id(),
            name=name,
            email=email,
            alias=alias,
            ssh_key_path=self.keys.key_path_for(alias),
        )
        generated = {"key": False}

        def ensure_key() -> None:
            generated["key"] = self.keys.ensure_key(identity, self.confirm)

        def discard_key() -> None:
            if generated["key"]:
                identity.ssh_key_path.unlink(missing_ok=True)
                identity.public_key_path.unlink(missing_ok=True)

        steps = [
            Step("ensure-key", ensure_key, discard_key),
            Step(
                "register",
                lambda: registry.add(identity),
                lambda: registry.users.remove(identity),
            ),
        ]
        if registry.active_user is None:
            steps.append(self._activate_step(registry, identity, scope))
        steps += [
            Step(
                "ssh-alias",
                lambda: self.aliases.upsert(alias, identity.ssh_key_path),
                lambda: self.aliases.remove(alias),
            ),
            Step("persist", lambda: self.registry_store.save(registry)),
        ]

        report = run_steps("add", steps)
        logger.info("Added user %s (ID: %d)", identity.name, identity.id)
        return OperationResult(registry=registry, report=report, identity=identity)

    def change(
        self,
        registry: Registry,
        user_id: int,
        scope: GitScope = GitScope.GLOBAL,
    ) -> OperationResult:
        """Make ``user_id`` the active identity and apply it to git.

        SSH aliases are per identity, not per active identity, so they
        are left alone.

        Raises:
            NotFound: No identity has ``user_id``.
            StepFailed: Applying or persisting failed.
        """
        if registry.find_by_id(user_id) is None:
            raise NotFound(user_id)

        registry = registry.model_copy(deep=True)
        identity = registry.find_by_id(user_id)
        report = run_steps("change", [
            self._activate_step(registry, identity, scope),
            Step("persist", lambda: self.registry_store.save(registry)),
        ])
        logger.info("Switched to user %s", identity.label())
        return OperationResult(registry=registry, report=report, identity=identity)

    def remove(self, registry: Registry, user_id: int) -> OperationResult:
        """Delete ``user_id`` along with its SSH alias and (if confirmed) keys.

        Key and alias removal are best-effort: their failures land in
        the report and removal carries on.

        Raises:
            NotFound: No identity has ``user_id``.
            StepFailed: Persisting the registry failed.
        """
        if registry.find_by_id(user_id) is None:
            raise NotFound(user_id)

        registry = registry.model_copy(deep=True)
        identity = registry.find_by_id(user_id)
        position = registry.users.index(identity)
        previous_active = registry.active_user

        def restore_record() -> None:
            registry.users.insert(position, identity)
            registry.active_user = previous_active

        report = run_steps("remove", [
            Step(
                "remove-key",
                lambda: self.keys.remove_key(identity, self.confirm),
                best_effort=True,
            ),
            Step(
                "ssh-alias",
                lambda: self.aliases.remove(identity.alias),
                lambda: self.aliases.upsert(identity.alias, identity.ssh_key_path),
                best_effort=True,
            ),
            Step("unregister", lambda: registry.remove(user_id), restore_record),
            Step("persist", lambda: self.registry_store.save(registry)),
        ])
        logger.info("Removed user %s (ID: %d)", identity.name, user_id)
        return OperationResult(registry=registry, report=report, identity=identity)

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    def list_identities(self, registry: Registry) -> list[Identity]:
        return list(registry.users)

    def current(self, registry: Registry) -> Optional[Identity]:
        return registry.active_identity()

    def saved_global(self, registry: Registry) -> Optional[GlobalGitConfig]:
        return registry.global_config

    def public_key(self, registry: Registry, user_id: int) -> Optional[str]:
        """Public key text for ``user_id``, or None if it has no key on disk.

        Raises:
            NotFound: No identity has ``user_id``.
        """
        identity = registry.find_by_id(user_id)
        if identity is None:
            raise NotFound(user_id)
        return self.keys.read_public_key(identity)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _activate_step(self, registry: Registry, identity: Identity, scope: GitScope) -> Step:
        previous_active = registry.active_user
        previous = registry.active_identity()

        def activate() -> None:
            self._snapshot_global(registry)
            registry.active_user = identity.id
            self.git.apply(identity.name, identity.email, scope)

        def deactivate() -> None:
            registry.active_user = previous_active
            self._reapply(previous or registry.global_config, scope)

        return Step("activate", activate, deactivate)

    def _snapshot_global(self, registry: Registry) -> None:
        """Record git's global identity the first time gitmt is about to overwrite it."""
        if registry.global_config is not None:
            return
        snapshot = self.git.read_global()
        if snapshot is None:
            logger.info("No global git config found")
            return
        registry.global_config = snapshot
        logger.debug("Saved global git config %s <%s>", snapshot.name, snapshot.email)

    def _reapply(self, target: Union[Identity, GlobalGitConfig, None], scope: GitScope) -> None:
        if target is None or not target.name or not target.email:
            logger.warning("Nothing to restore git identity to (%s)", scope.value)
            return
        self.git.apply(target.name, target.email, scope)
