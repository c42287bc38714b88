"""
Pydantic models for the identity registry and gitmt's own settings.

The registry is serialized with the camelCase keys the tool has always
written (``activeUser``, ``globalConfig``, ``sshKeyPath``) so existing
``config.json`` files keep loading.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger("gitmt.models")

_ALIAS_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class GitScope(str, Enum):
    """Where git identity settings are written."""

    GLOBAL = "global"
    LOCAL = "local"


def alias_from_name(name: str) -> str:
    """Derive an alias from a display name.

    Accents are folded to ASCII and every run of characters outside
    ``[A-Za-z0-9._-]`` becomes ``_``, so ``"José O'Neil"`` gives
    ``"jose_o_neil"``. A name with nothing usable left gives ``"user"``.

    Args:
        name: Identity display name, e.g. ``"Jane Doe"``.

    Returns:
        str: Lower-cased alias that starts with a letter or digit.
    """
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    alias = _ALIAS_UNSAFE.sub("_", folded).strip("._-").lower()
    return alias or "user"


class Identity(BaseModel):
    """One git identity.

    Attributes:
        id: Registry id, assigned at creation.
        name: git ``user.name``.
        email: git ``user.email``.
        alias: Suffix of the SSH host alias, unique in the registry.
        ssh_key_path: Private key path; the file may not exist.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    email: str
    alias: str = ""
    ssh_key_path: Path = Field(alias="sshKeyPath")

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_alias(cls, data: Any) -> Any:
        # Records written before aliases existed only carry a name.
        if isinstance(data, dict) and not data.get("alias") and data.get("name"):
            data = {**data, "alias": alias_from_name(str(data["name"]))}
        return data

    @property
    def public_key_path(self) -> Path:
        """Path of the public half of the keypair."""
        return self.ssh_key_path.with_name(self.ssh_key_path.name + ".pub")

    def label(self) -> str:
        """Return ``Name <email>`` for display."""
        return f"{self.name} <{self.email}>"


class GlobalGitConfig(BaseModel):
    """Snapshot of git's global identity taken before gitmt first changed it."""

    name: Optional[str] = None
    email: Optional[str] = None


class Registry(BaseModel):
    """Every configured identity plus which one is active.

    Invariants: ``active_user`` is None or the id of a record in
    ``users``; aliases are unique among ``users``.
    """

    model_config = ConfigDict(populate_by_name=True)

    users: list[Identity] = Field(default_factory=list)
    active_user: Optional[int] = Field(default=None, alias="activeUser")
    global_config: Optional[GlobalGitConfig] = Field(default=None, alias="globalConfig")

    @model_validator(mode="after")
    def _dedupe_aliases(self) -> "Registry":
        # Aliases derived from legacy names can collide ("Jane Doe" and
        # "jane  doe"). Later records get their id appended.
        seen: set[str] = set()
        for user in self.users:
            if user.alias in seen:
                candidate = f"{user.alias}_{user.id}"
                suffix = 2
                while candidate in seen:
                    candidate = f"{user.alias}_{user.id}_{suffix}"
                    suffix += 1
                logger.warning(
                    "Alias %s of user %d is already taken, using %s",
                    user.alias, user.id, candidate,
                )
                user.alias = candidate
            seen.add(user.alias)
        return self

    def next_id(self) -> int:
        """Id for the next identity: the user count plus one.

        This can hand out an id that is still in use after a removal
        (remove id 1 of 2, then add: the new id is 2 again). The
        collision is logged rather than papered over.
        """
        new_id = len(self.users) + 1
        if self.find_by_id(new_id) is not None:
            logger.warning("Next id %d collides with an existing identity", new_id)
        return new_id

    def find_by_id(self, user_id: int) -> Optional[Identity]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def find_by_alias(self, alias: str) -> Optional[Identity]:
        for user in self.users:
            if user.alias == alias:
                return user
        return None

    def add(self, identity: Identity) -> None:
        self.users.append(identity)

    def remove(self, user_id: int) -> Optional[Identity]:
        """Remove the first identity with ``user_id``.

        Clears ``active_user`` when it pointed at the removed identity.
        No other identity is promoted.

        Returns:
            The removed identity, or None if there was none.
        """
        for index, user in enumerate(self.users):
            if user.id == user_id:
                del self.users[index]
                if self.active_user == user_id:
                    self.active_user = None
                return user
        return None

    def active_identity(self) -> Optional[Identity]:
        if self.active_user is None:
            return None
        return self.find_by_id(self.active_user)


class GitmtConfig(BaseModel):
    """Settings read from ``<home>/config.yaml``."""

    ssh_dir: Path = Path("~/.ssh")
    ssh_config: Optional[Path] = None
    host: str = "github.com"
    key_type: str = "rsa"
    key_bits: int = 4096
    key_prefix: str = "id_rsa_gitmt_"

    @property
    def ssh_dir_path(self) -> Path:
        return self.ssh_dir.expanduser()

    @property
    def ssh_config_path(self) -> Path:
        """The SSH client config file, ``<ssh_dir>/config`` unless overridden."""
        if self.ssh_config is not None:
            return self.ssh_config.expanduser()
        return self.ssh_dir_path / "config"
