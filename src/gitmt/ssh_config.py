"""
SSH client config editing, one stanza per identity alias.

The config file is parsed into a preamble (global options before the
first ``Host``/``Match`` line) and an ordered list of stanzas. gitmt only
ever touches stanzas whose header is exactly ``Host <host>-<alias>``;
everything the user wrote by hand is carried through unchanged apart
from blank-line normalization between stanzas.

Managed stanza:

    Host github.com-<alias>
        HostName github.com
        User git
        IdentityFile <path>
        IdentitiesOnly yes
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import IOFailure

logger = logging.getLogger("gitmt.ssh_config")

BLOCK_KEYWORDS = ("host", "match")
INDENT = "    "

_KEYWORD_SPLIT = re.compile(r"[\s=]+")


def _split_directive(line: str) -> tuple[str, list[str]]:
    """Split ``Keyword value...`` (or ``Keyword=value``) into its parts."""
    parts = [p for p in _KEYWORD_SPLIT.split(line.strip()) if p]
    if not parts:
        return "", []
    return parts[0].lower(), parts[1:]


def _is_block_start(line: str) -> bool:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return False
    keyword, _ = _split_directive(stripped)
    return keyword in BLOCK_KEYWORDS


def _trim_trailing_blank(lines: list[str]) -> list[str]:
    end = len(lines)
    while end and not lines[end - 1].strip():
        end -= 1
    return lines[:end]


def _pop_trailing_comments(lines: list[str]) -> list[str]:
    """Remove and return the comment lines at the end of ``lines``.

    Only comments directly above the next block header count; a blank
    line ends the run.
    """
    start = len(lines)
    while start and lines[start - 1].strip().startswith("#"):
        start -= 1
    taken = lines[start:]
    del lines[start:]
    return taken


@dataclass
class Stanza:
    """A ``Host``/``Match`` block: its header line and the lines under it.

    ``leading`` holds comment lines written directly above the header;
    they belong to this block and move or disappear with it.
    """

    header: str
    body: list[str] = field(default_factory=list)
    leading: list[str] = field(default_factory=list)

    @property
    def keyword(self) -> str:
        return _split_directive(self.header)[0]

    @property
    def patterns(self) -> list[str]:
        return _split_directive(self.header)[1]

    def is_host(self, host: str) -> bool:
        """True if this is a ``Host`` block for exactly ``host``."""
        return self.keyword == "host" and self.patterns == [host]

    def lines(self) -> list[str]:
        return _trim_trailing_blank([*self.leading, self.header, *self.body])


@dataclass
class SSHConfig:
    """Parsed SSH client config."""

    preamble: list[str] = field(default_factory=list)
    stanzas: list[Stanza] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "SSHConfig":
        config = cls()
        current: Optional[Stanza] = None
        for line in text.splitlines():
            line = line.rstrip()
            if _is_block_start(line):
                above = config.preamble if current is None else current.body
                current = Stanza(header=line, leading=_pop_trailing_comments(above))
                config.stanzas.append(current)
            elif current is None:
                config.preamble.append(line)
            else:
                current.body.append(line)
        return config

    def render(self) -> str:
        """Serialize back to text, ending in exactly one newline.

        Returns an empty string for a config with no content.
        """
        blocks = []
        preamble = _trim_trailing_blank(self.preamble)
        if preamble:
            blocks.append("\n".join(preamble))
        for stanza in self.stanzas:
            blocks.append("\n".join(stanza.lines()))
        text = "\n\n".join(blocks).strip()
        return text + "\n" if text else ""

    def count(self, host: str) -> int:
        return sum(1 for s in self.stanzas if s.is_host(host))

    def upsert(self, stanza: Stanza) -> None:
        """Replace the stanza for the same host in place, or append it.

        Extra stanzas for the same host are dropped, so at most one
        remains afterwards.
        """
        host = stanza.patterns[0]
        kept: list[Stanza] = []
        replaced = False
        for existing in self.stanzas:
            if existing.is_host(host):
                if not replaced:
                    kept.append(stanza)
                    replaced = True
                continue
            kept.append(existing)
        if not replaced:
            kept.append(stanza)
        self.stanzas = kept

    def remove(self, host: str) -> int:
        """Drop every ``Host`` stanza for exactly ``host``.

        Returns:
            int: Number of stanzas removed.
        """
        before = len(self.stanzas)
        self.stanzas = [s for s in self.stanzas if not s.is_host(host)]
        return before - len(self.stanzas)


def build_alias_stanza(host_alias: str, hostname: str, key_path: Path) -> Stanza:
    """Create the managed stanza for one identity."""
    identity_file = str(key_path)
    if any(ch.isspace() for ch in identity_file):
        identity_file = f'"{identity_file}"'
    return Stanza(
        header=f"Host {host_alias}",
        body=[
            f"{INDENT}HostName {hostname}",
            f"{INDENT}User git",
            f"{INDENT}IdentityFile {identity_file}",
            f"{INDENT}IdentitiesOnly yes",
        ],
    )


class SSHAliasStore:
    """Keeps one ``Host <host>-<alias>`` stanza per identity in an SSH config file.

    Every call reads the file, edits it, and writes it back; nothing is
    cached between calls.
    """

    def __init__(self, path: Path, host: str = "github.com"):
        self.path = Path(path)
        self.host = host

    def host_alias(self, alias: str) -> str:
        """``github.com-<alias>`` for the configured host."""
        return f"{self.host}-{alias}"

    # Hand-written configs are not always UTF-8. surrogateescape keeps
    # undecodable bytes as they were on the way back out.
    def read(self) -> SSHConfig:
        if not self.path.exists():
            return SSHConfig()
        try:
            text = self.path.read_text(encoding="utf-8", errors="surrogateescape")
        except OSError as exc:
            raise IOFailure(f"Cannot read {self.path}: {exc}") from exc
        return SSHConfig.parse(text)

    def write(self, config: SSHConfig) -> None:
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            self.path.write_text(config.render(), encoding="utf-8", errors="surrogateescape")
            self.path.chmod(0o600)
        except (OSError, UnicodeEncodeError) as exc:
            raise IOFailure(f"Cannot write {self.path}: {exc}") from exc

    def upsert(self, alias: str, key_path: Path) -> None:
        """Add or replace the stanza for ``alias``."""
        config = self.read()
        config.upsert(build_alias_stanza(self.host_alias(alias), self.host, key_path))
        self.write(config)
        logger.info("SSH alias %s -> %s", self.host_alias(alias), key_path)

    def remove(self, alias: str) -> int:
        """Remove every stanza for ``alias``.

        Returns:
            int: Number of stanzas removed. The file is left untouched
            when there was nothing to remove.
        """
        config = self.read()
        removed = config.remove(self.host_alias(alias))
        if removed:
            self.write(config)
            logger.info("Removed %d SSH stanza(s) for %s", removed, self.host_alias(alias))
        return removed

    def count(self, alias: str) -> int:
        return self.read().count(self.host_alias(alias))
