"""Tests for changelog parsing and filtering (devshell/changelog.py)."""

import pytest
from packaging.version import Version

from devshell.changelog import ChangelogError, Entry, Log, format_entries


def make_log(*pairs):
    return Log.from_value({"entries": [{"version": v, "changes": c} for v, c in pairs]})


class TestParsing:
    """Tests for decoding the evaluated changelog."""

    def test_parses_entries_in_order(self):
        log = make_log(("1.0", "first"), ("1.1", "second"))

        assert log.entries == [
            Entry(Version("1.0"), "first"),
            Entry(Version("1.1"), "second"),
        ]

    def test_integer_versions(self):
        """Build revision numbers are accepted as versions."""
        log = make_log((41, "a"), (42, "b"))
        assert [e.version for e in log.entries] == [Version("41"), Version("42")]

    def test_empty_entries(self):
        assert Log.from_value({"entries": []}).entries == []

    @pytest.mark.parametrize("data", [
        None,
        [],
        {},
        {"entries": "nope"},
    ])
    def test_bad_top_level_shape(self, data):
        with pytest.raises(ChangelogError):
            Log.from_value(data)

    def test_missing_changes(self):
        with pytest.raises(ChangelogError) as exc_info:
            Log.from_value({"entries": [{"version": "1.0"}]})
        assert "changes" in str(exc_info.value)

    def test_invalid_version(self):
        with pytest.raises(ChangelogError):
            make_log(("not a version", "x"))

    def test_non_string_changes(self):
        with pytest.raises(ChangelogError):
            make_log(("1.0", ["x"]))


class TestNewerThan:
    """Tests for filtering by the running version."""

    def test_strictly_greater_only(self):
        log = make_log(("1.2.3", "a"), ("1.3.0", "fix X"), ("2.0.0", "fix Y\nfix Z"))

        newer = log.newer_than(Version("1.2.3"))

        assert [str(e.version) for e in newer] == ["1.3.0", "2.0.0"]

    def test_matches_set_definition(self):
        """Result is exactly the entries above V, in input order."""
        versions = ["0.9", "3.0", "1.0", "2.5", "1.0.1", "0.1"]
        log = make_log(*[(v, v) for v in versions])
        current = Version("1.0")

        newer = log.newer_than(current)

        assert [e.changes for e in newer] == [v for v in versions if Version(v) > current]

    def test_nothing_newer(self):
        log = make_log(("1.0", "a"))
        assert log.newer_than(Version("5.0")) == []


class TestFormatEntries:
    """Tests for console rendering."""

    def test_header_and_indented_lines(self):
        entries = [Entry(Version("2.0.0"), "fix Y\nfix Z")]

        assert format_entries(entries) == ["", "2.0.0:", "    fix Y", "    fix Z"]

    def test_no_entries(self):
        assert format_entries([]) == []
