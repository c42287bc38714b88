"""
User registry persistence.

The registry lives in a single JSON document at ``<home>/config.json``.
It is loaded once per command, handed through the engine as a value,
and written back whole. There is no locking: two concurrent gitmt
processes race and the last writer wins.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from .errors import CorruptConfig, IOFailure
from .models import Registry

logger = logging.getLogger("gitmt.registry")

REGISTRY_FILENAME = "config.json"


class RegistryStore:
    """Reads and writes the registry file under a gitmt home directory."""

    def __init__(self, home: Path):
        self.home = Path(home)
        self.path = self.home / REGISTRY_FILENAME

    def load(self) -> Registry:
        """Load the registry.

        Returns:
            Registry: The stored registry, or an empty one if no file exists.

        Raises:
            CorruptConfig: The file is not UTF-8 JSON or not a registry.
            IOFailure: The file exists but cannot be read.
        """
        if not self.path.exists():
            logger.debug("No registry at %s, starting empty", self.path)
            return Registry()

        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            raise IOFailure(f"Cannot read {self.path}: {exc}") from exc

        try:
            data = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptConfig(f"Invalid JSON in {self.path}: {exc}") from exc

        if not isinstance(data, dict):
            raise CorruptConfig(f"Expected a JSON object in {self.path}")

        try:
            return Registry.model_validate(data)
        except ValidationError as exc:
            raise CorruptConfig(f"Unexpected registry shape in {self.path}: {exc}") from exc

    def save(self, registry: Registry) -> Path:
        """Overwrite the registry file with ``registry``.

        Writes to a sibling temp file and renames it over the target so
        a crash never leaves a half-written registry.

        Returns:
            Path: The registry file path.

        Raises:
            IOFailure: The file or its directory cannot be written.
        """
        payload = json.dumps(
            registry.model_dump(mode="json", by_alias=True), indent=2
        )
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.home.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload + "\n", encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise IOFailure(f"Cannot write {self.path}: {exc}") from exc

        logger.debug("Saved registry with %d user(s) to %s", len(registry.users), self.path)
        return self.path
