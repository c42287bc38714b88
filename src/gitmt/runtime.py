"""
Per-invocation wiring.

Loads ``<home>/config.yaml``, then builds the registry store, SSH alias
store, key manager, git applier, and the engine on top of them. One
runtime serves one command; nothing is shared between invocations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import GITMT_HOME
from .engine import SyncEngine
from .git_identity import GitIdentityApplier
from .keys import Confirm, KeyManager
from .models import GitmtConfig, Registry
from .registry import RegistryStore
from .ssh_config import SSHAliasStore

logger = logging.getLogger("gitmt.runtime")

CONFIG_FILENAME = "config.yaml"


def load_config(home: Path) -> GitmtConfig:
    """Load gitmt settings.

    Args:
        home: gitmt home directory.

    Returns:
        GitmtConfig from config.yaml, or defaults if it is missing or invalid.
    """
    config_file = home / CONFIG_FILENAME
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return GitmtConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError, OSError) as exc:
            logger.warning("Failed to load %s: %s — using defaults", config_file, exc)
    return GitmtConfig()


class GitmtRuntime:
    """Stores and engine for one gitmt home directory."""

    def __init__(
        self,
        home: Optional[Path] = None,
        confirm: Optional[Confirm] = None,
        cwd: Optional[Path] = None,
    ):
        """Initialize the runtime.

        Args:
            home: Override gitmt home. Defaults to ~/.gitmt/.
            confirm: Prompt callback. Defaults to declining every prompt.
            cwd: Working directory for local-scope git writes.
        """
        self.home = Path(home or GITMT_HOME).expanduser()
        self.config = load_config(self.home)
        self.registry_store = RegistryStore(self.home)
        self.aliases = SSHAliasStore(self.config.ssh_config_path, host=self.config.host)
        self.keys = KeyManager(
            self.config.ssh_dir_path,
            key_prefix=self.config.key_prefix,
            key_type=self.config.key_type,
            key_bits=self.config.key_bits,
        )
        self.git = GitIdentityApplier(cwd=cwd)
        self.engine = SyncEngine(
            self.registry_store,
            self.aliases,
            self.keys,
            self.git,
            confirm or (lambda message, default: False),
        )

    def load_registry(self) -> Registry:
        return self.registry_store.load()
