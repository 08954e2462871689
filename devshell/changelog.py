"""
Structured changelog shipped with each release.

The upgrade expression's `changelog` attribute evaluates to JSON of the form:

    {"entries": [{"version": "1.3.0", "changes": "fix X\\nfix Y"}, ...]}

Entries are kept in document order. Authors are expected to list them
monotonically; nothing here re-sorts them.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

from packaging.version import InvalidVersion, Version


class ChangelogError(Exception):
    """Raised when changelog data does not have the expected shape."""
    pass


@dataclass(frozen=True)
class Entry:
    """A single release's changes."""

    version: Version
    changes: str

    @classmethod
    def from_value(cls, data: Any) -> "Entry":
        if not isinstance(data, dict):
            raise ChangelogError(f"Changelog entry must be an object, got {type(data).__name__}")
        try:
            raw_version = data["version"]
            changes = data["changes"]
        except KeyError as e:
            raise ChangelogError(f"Changelog entry is missing field {e}") from e

        if not isinstance(changes, str):
            raise ChangelogError(f"Changes for {raw_version} must be a string")
        try:
            version = Version(str(raw_version))
        except InvalidVersion as e:
            raise ChangelogError(f"Invalid changelog version {raw_version!r}") from e

        return cls(version=version, changes=changes)


@dataclass(frozen=True)
class Log:
    """All changelog entries, in document order."""

    entries: list[Entry] = field(default_factory=list)

    @classmethod
    def from_value(cls, data: Any) -> "Log":
        """Parse the decoded JSON value of the changelog attribute."""
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise ChangelogError("Changelog must be an object with an 'entries' list")
        return cls(entries=[Entry.from_value(item) for item in data["entries"]])

    def newer_than(self, current: Version) -> list[Entry]:
        """Entries whose version is strictly greater than `current`."""
        return [entry for entry in self.entries if entry.version > current]


def format_entries(entries: Iterable[Entry]) -> list[str]:
    """Render entries as console lines: blank, header, indented changes."""
    lines = []
    for entry in entries:
        lines.append("")
        lines.append(f"{entry.version}:")
        for line in entry.changes.splitlines():
            lines.append(f"    {line}")
    return lines
