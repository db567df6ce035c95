"""Tests for issuectl.issues.statefile module."""

import pytest

from issuectl.issues.models import IssueStatus
from issuectl.issues.statefile import (
    parse_decomposition,
    parse_dependencies,
    parse_postconditions,
    parse_status,
    replace_status,
)
from issuectl.lib.errors import StatusError


class TestParseStatus:
    """Tests for parse_status()."""

    def test_reads_status_line(self):
        lines = ["# State", "- **Status:** in-progress"]
        assert parse_status(lines) == IssueStatus.IN_PROGRESS

    def test_normalizes_alias(self):
        assert parse_status(["- **Status:** done"]) == IssueStatus.CLOSED

    def test_first_status_line_wins(self):
        lines = ["- **Status:** open", "- **Status:** closed"]
        assert parse_status(lines) == IssueStatus.OPEN

    def test_missing_status_line(self):
        with pytest.raises(StatusError, match="Status field missing in x/STATE.md"):
            parse_status(["# State", "- **Progress:** 10%"], "x/STATE.md")

    def test_unknown_status_is_fatal(self):
        with pytest.raises(StatusError, match="Unknown status 'wip'"):
            parse_status(["- **Status:** wip"])


class TestParseDependencies:
    """Tests for parse_dependencies()."""

    def test_inline_list(self):
        lines = ["- **Dependencies:** [2.1-parser, lexer]"]
        assert parse_dependencies(lines) == ["2.1-parser", "lexer"]

    def test_inline_quoted_entries(self):
        lines = ['- **Dependencies:** ["2.1-parser", "lexer"]']
        assert parse_dependencies(lines) == ["2.1-parser", "lexer"]

    @pytest.mark.parametrize("value", ["", "[]", "none", "None"])
    def test_inline_empty_forms(self, value):
        assert parse_dependencies([f"- **Dependencies:** {value}"]) == []

    def test_inline_without_brackets_is_empty(self):
        assert parse_dependencies(["- **Dependencies:** lexer"]) == []

    def test_section_form(self):
        lines = [
            "- **Status:** open",
            "",
            "## Dependencies",
            "- 2.1-parser (must land first)",
            "- lexer",
            "",
            "## Notes",
            "- not-a-dependency",
        ]
        assert parse_dependencies(lines) == ["2.1-parser", "lexer"]

    def test_inline_wins_over_section(self):
        lines = ["- **Dependencies:** [a]", "## Dependencies", "- b"]
        assert parse_dependencies(lines) == ["a"]

    def test_no_dependencies(self):
        assert parse_dependencies(["- **Status:** open"]) == []


class TestParseDecomposition:
    """Tests for parse_decomposition()."""

    def test_not_decomposed(self):
        assert parse_decomposition(["- **Status:** open"]) == (False, [])

    def test_children_listed(self):
        lines = ["## Decomposed Into", "- part-one", "- part-two (split out)", "", "## Notes", "- other"]
        assert parse_decomposition(lines) == (True, ["part-one", "part-two"])

    def test_empty_section_still_decomposed(self):
        assert parse_decomposition(["## Decomposed Into", "", "## Notes"]) == (True, [])


class TestParsePostconditions:
    """Tests for parse_postconditions()."""

    def test_marked_items(self):
        text = "# Plan\n\n- [issue] final-release\n- [ ] something else\n  - [issue] docs-sweep\n"
        assert parse_postconditions(text) == ["final-release", "docs-sweep"]

    def test_missing_plan(self):
        assert parse_postconditions(None) == []
        assert parse_postconditions("") == []


class TestReplaceStatus:
    """Tests for replace_status()."""

    def test_only_status_line_changes(self):
        text = "# State\n\n- **Status:** open\n- **Progress:** 40%\n\n## Notes\nkeep me\n"
        result = replace_status(text, IssueStatus.CLOSED)
        assert result == "# State\n\n- **Status:** closed\n- **Progress:** 40%\n\n## Notes\nkeep me\n"

    def test_alias_replaced_with_canonical(self):
        result = replace_status("- **Status:** pending", IssueStatus.IN_PROGRESS)
        assert result == "- **Status:** in-progress"

    def test_missing_status_line(self):
        with pytest.raises(StatusError):
            replace_status("# State\n", IssueStatus.OPEN)
