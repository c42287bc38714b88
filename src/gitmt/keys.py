"""
SSH key material for identities.

Keys live at ``<ssh_dir>/<key_prefix><alias>`` with a ``.pub`` partner.
Generation is optional: the user is asked first, and an identity with
no key on disk is a normal state, not an error.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

from .errors import ExternalToolFailed, ExternalToolMissing, IOFailure
from .models import Identity

logger = logging.getLogger("gitmt.keys")

SSH_KEYGEN = "ssh-keygen"

Confirm = Callable[[str, bool], bool]
"""Prompt callback: ``(message, default) -> answer``."""


def _run(cmd: list[str]) -> subprocess.CompletedProcess:
    """Run a command and capture output.

    No timeout: a hung ssh-keygen blocks the command.
    """
    if shutil.which(cmd[0]) is None:
        raise ExternalToolMissing(cmd[0])
    try:
        return subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise ExternalToolMissing(cmd[0]) from exc


class KeyManager:
    """Creates, reads, and deletes per-identity SSH keypairs."""

    def __init__(
        self,
        ssh_dir: Path,
        key_prefix: str = "id_rsa_gitmt_",
        key_type: str = "rsa",
        key_bits: int = 4096,
    ):
        self.ssh_dir = Path(ssh_dir)
        self.key_prefix = key_prefix
        self.key_type = key_type
        self.key_bits = key_bits

    def key_path_for(self, alias: str) -> Path:
        return self.ssh_dir / f"{self.key_prefix}{alias}"

    def has_key(self, identity: Identity) -> bool:
        return identity.ssh_key_path.exists() or identity.public_key_path.exists()

    def generate(self, identity: Identity) -> Path:
        """Run ssh-keygen for ``identity`` with an empty passphrase.

        Raises:
            ExternalToolMissing: ssh-keygen is not installed.
            ExternalToolFailed: ssh-keygen exited non-zero.
            IOFailure: The SSH directory cannot be created.
        """
        try:
            self.ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"Cannot create {self.ssh_dir}: {exc}") from exc

        result = _run([
            SSH_KEYGEN,
            "-t", self.key_type,
            "-b", str(self.key_bits),
            "-C", identity.email,
            "-f", str(identity.ssh_key_path),
            "-N", "",
        ])
        if result.returncode != 0:
            raise ExternalToolFailed(SSH_KEYGEN, result.returncode, result.stderr)

        logger.info("SSH key generated at %s", identity.ssh_key_path)
        return identity.ssh_key_path

    def ensure_key(self, identity: Identity, confirm: Confirm) -> bool:
        """Offer to generate a key if the identity has none.

        Args:
            identity: Identity whose ``ssh_key_path`` should hold a key.
            confirm: Prompt callback; declining leaves the identity keyless.

        Returns:
            bool: True if a key was generated by this call.
        """
        if identity.ssh_key_path.exists():
            logger.debug("Key already present at %s", identity.ssh_key_path)
            return False

        if not confirm(f"Would you like to generate a new SSH key for {identity.name}?", True):
            logger.info("Key generation declined for %s", identity.alias)
            return False

        self.generate(identity)
        return True

    def remove_key(self, identity: Identity, confirm: Confirm) -> bool:
        """Offer to delete the identity's keypair.

        Only prompts when at least one of the two files exists. Each file
        is deleted on its own; a missing half is fine.

        Returns:
            bool: True if any file was deleted.

        Raises:
            IOFailure: A key file exists but cannot be deleted.
        """
        if not self.has_key(identity):
            return False

        if not confirm(f"Do you want to remove the SSH keys for {identity.name}?", False):
            return False

        removed = False
        for path in (identity.ssh_key_path, identity.public_key_path):
            if not path.exists():
                continue
            try:
                path.unlink()
            except OSError as exc:
                raise IOFailure(f"Cannot delete {path}: {exc}") from exc
            removed = True

        logger.info("SSH keys removed for %s", identity.alias)
        return removed

    def read_public_key(self, identity: Identity) -> Optional[str]:
        """Return the public key text, or None if there is no public key file."""
        path = identity.public_key_path
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise IOFailure(f"Cannot read {path}: {exc}") from exc
