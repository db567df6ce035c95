"""Tests for issuectl.discovery.engine module."""

from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import SESSION_A, SESSION_B, InMemoryRepository
from issuectl.discovery import (
    AlreadyComplete,
    Blocked,
    Decomposed,
    DiscoveryEngine,
    DiscoveryError,
    ExistingWorktree,
    Found,
    NotExecutable,
    NotFound,
    SearchOptions,
    SearchScope,
)
from issuectl.issues import IssueId
from issuectl.runner.locking import LockManager


@pytest.fixture
def engine(repo, locks):
    return DiscoveryEngine(repo, locks)


def search(engine, scope=SearchScope.ALL, target="", session=SESSION_A, **kwargs):
    return engine.find_next(SearchOptions(scope=scope, session_id=session, target=target, **kwargs))


def found_id(result) -> str:
    assert isinstance(result, Found), result
    return str(result.issue_id)


class TestScenarios:
    """End-to-end selection scenarios on a real tree."""

    def test_dependency_chain(self, tree, engine):
        """X has no deps, Y depends on X: X first, Y once X closes."""
        tree.item("2.1-x", "open", deps=[])
        tree.item("2.1-y", "open", deps=["2.1-x"])

        result = search(engine, SearchScope.MINOR, "2.1")
        assert found_id(result) == "2.1-x"

        tree.set_status("2.1-x", "closed")
        result = search(engine, SearchScope.MINOR, "2.1", session=SESSION_B)
        assert found_id(result) == "2.1-y"

    def test_decomposed_parent(self, tree, engine):
        """A parent with an open child is skipped until the child closes."""
        tree.item("2.1-parent", "open", children=["c1", "c2"])
        tree.item("2.1-c1", "in-progress")
        tree.item("2.1-c2", "closed")
        tree.worktree("2.1-c1")

        assert isinstance(search(engine, SearchScope.ISSUE, "2.1-parent"), Decomposed)
        assert isinstance(search(engine), NotFound)

        tree.set_status("2.1-c1", "closed")
        assert found_id(search(engine)) == "2.1-parent"

    def test_postcondition_item(self, tree, engine):
        """final-release waits for every other item in v2.1."""
        tree.plan("2.1", ["final-release"])
        tree.item("2.1-feature", "open")
        tree.item("2.1-final-release", "open")
        tree.worktree("2.1-feature")

        assert isinstance(search(engine, SearchScope.MINOR, "2.1"), NotFound)

        tree.set_status("2.1-feature", "closed")
        assert found_id(search(engine, SearchScope.MINOR, "2.1")) == "2.1-final-release"

    def test_postcondition_override(self, tree, engine):
        tree.plan("2.1", ["final-release"])
        tree.item("2.1-a-feature", "open")
        tree.item("2.1-final-release", "open")
        tree.worktree("2.1-a-feature")

        result = search(engine, SearchScope.MINOR, "2.1", override_postconditions=True)
        assert found_id(result) == "2.1-final-release"

    def test_postcondition_applies_to_patch_items(self, tree, engine):
        tree.plan("2.1", ["wrap-up"])
        tree.item("2.1-feature", "open")
        tree.item("2.1.1-wrap-up", "open")
        tree.worktree("2.1-feature")
        assert isinstance(search(engine, SearchScope.MINOR, "2.1"), NotFound)

    def test_lock_held_elsewhere_is_skipped(self, tree, engine, locks):
        tree.item("2.1-a", "open")
        tree.item("2.1-b", "open")
        locks.acquire("2.1-a", SESSION_B)

        result = search(engine)
        assert found_id(result) == "2.1-b"
        assert locks.check("2.1-b").session_id == SESSION_A

    def test_lock_held_elsewhere_checked_before_reading_state(self, tree, engine, locks, caplog):
        tree.raw_item("2.1-a", "# no status\n")
        tree.item("2.1-b", "open")
        locks.acquire("2.1-a", SESSION_B)

        with caplog.at_level("DEBUG", logger="issuectl.discovery.engine"):
            assert found_id(search(engine)) == "2.1-b"
        assert "Skipping 2.1-a: locked by another session" in caplog.text

    def test_found_claims_lock(self, tree, engine, locks):
        tree.item("2.1-a", "open")
        result = search(engine)
        assert result.to_dict()["lock_status"] == "acquired"
        assert locks.check("2.1-a").session_id == SESSION_A

    def test_second_session_gets_next_item(self, tree, engine):
        tree.item("2.1-a", "open")
        tree.item("2.1-b", "open")
        assert found_id(search(engine, session=SESSION_A)) == "2.1-a"
        assert found_id(search(engine, session=SESSION_B)) == "2.1-b"
        assert isinstance(search(engine, session="cccccccc-cccc-cccc-cccc-cccccccccccc"), NotFound)


class TestScopedSearch:
    """Ordering, scope targets and candidate filtering."""

    def test_major_items_before_minors(self, tree, engine):
        tree.item("2.1-minor-item", "open")
        tree.item("2-major-item", "open")
        assert found_id(search(engine)) == "2-major-item"

    def test_versions_in_sorted_order(self, tree, engine):
        tree.item("2.0-later", "open")
        tree.item("1.5-earlier", "open")
        assert found_id(search(engine)) == "1.5-earlier"

    def test_minor_items_before_patches(self, tree, engine):
        tree.item("2.1.1-patch-item", "open")
        tree.item("2.1-zz-last-name", "open")
        assert found_id(search(engine, SearchScope.MINOR, "2.1")) == "2.1-zz-last-name"

    def test_patch_target(self, tree, engine):
        tree.item("2.1-other", "open")
        tree.item("2.1.1-patch-item", "open")
        result = search(engine, SearchScope.MINOR, "2.1.1")
        assert found_id(result) == "2.1.1-patch-item"
        assert result.to_dict()["patch"] == "1"

    def test_major_target(self, tree, engine):
        tree.item("1.0-old", "open")
        tree.item("2.3-new", "open")
        result = search(engine, SearchScope.MAJOR, "2")
        assert found_id(result) == "2.3-new"
        assert result.to_dict()["scope"] == "major"

    def test_missing_target_version(self, tree, engine):
        tree.item("1.0-old", "open")
        result = search(engine, SearchScope.MINOR, "9.9")
        assert isinstance(result, NotFound)
        assert result.scope == SearchScope.MINOR

    @pytest.mark.parametrize("scope,target", [
        (SearchScope.MINOR, "2"),
        (SearchScope.MAJOR, "2.1"),
        (SearchScope.MAJOR, ""),
        (SearchScope.MINOR, "two.one"),
    ])
    def test_malformed_target(self, engine, scope, target):
        assert isinstance(search(engine, scope, target), DiscoveryError)

    def test_version_dependencies_gate_minor(self, tree, engine):
        tree.item("2.0-release", "open")
        tree.item("2.1-feature", "open")
        tree.version_deps("2.1", ["2.0-release"])
        tree.worktree("2.0-release")
        assert isinstance(search(engine), NotFound)

        tree.set_status("2.0-release", "closed")
        assert found_id(search(engine)) == "2.1-feature"

    def test_exclude_pattern_counted(self, tree, engine):
        tree.item("2.1-docs-a", "open")
        tree.item("2.1-docs-b", "open")
        tree.item("2.1-code", "closed")
        result = search(engine, exclude_pattern="docs-*")
        assert isinstance(result, NotFound)
        assert result.excluded_count == 2
        assert result.to_dict()["message"] == "No executable issues found (2 excluded by pattern)"

    def test_exclude_is_case_sensitive(self, tree, engine):
        tree.item("2.1-Docs", "open")
        assert found_id(search(engine, exclude_pattern="docs")) == "2.1-Docs"

    def test_skips_ineligible_statuses(self, tree, engine):
        tree.item("2.1-a-closed", "closed")
        tree.item("2.1-b-blocked", "blocked")
        tree.item("2.1-c-pending", "pending")
        assert found_id(search(engine)) == "2.1-c-pending"

    def test_malformed_item_does_not_abort_scan(self, tree, engine):
        tree.raw_item("2.1-a-broken", "# State\n- **Status:** someday\n")
        tree.raw_item("2.1-b-nostatus", "# State\n")
        tree.item("2.1-c-good", "open")
        assert found_id(search(engine)) == "2.1-c-good"

    def test_permission_denied_item_does_not_abort_scan(self, tree, engine):
        tree.item("2.1-aaa-broken", "open")
        tree.item("2.1-bbb-good", "open")
        real_is_file = Path.is_file

        def is_file(path):
            if "aaa-broken" in path.parts:
                raise PermissionError(13, "Permission denied", str(path))
            return real_is_file(path)

        with patch.object(Path, "is_file", autospec=True, side_effect=is_file):
            result = search(engine)
        assert found_id(result) == "2.1-bbb-good"

    def test_unresolved_dependency_skipped(self, tree, engine):
        tree.item("2.1-a", "open", deps=["ghost"])
        assert isinstance(search(engine), NotFound)

    def test_existing_worktree_skipped(self, tree, engine):
        tree.item("2.1-a", "open")
        tree.item("2.1-b", "open")
        tree.worktree("2.1-a")
        assert found_id(search(engine)) == "2.1-b"

    def test_dependency_cycle_never_eligible(self, tree, engine):
        tree.item("2.1-a", "open", deps=["2.1-b"])
        tree.item("2.1-b", "open", deps=["2.1-a"])
        assert isinstance(search(engine), NotFound)

    def test_invalid_session(self, tree, engine):
        tree.item("2.1-a", "open")
        result = search(engine, session="not-a-uuid")
        assert isinstance(result, DiscoveryError)
        assert "Invalid session_id format" in result.message

    def test_empty_tree(self, engine):
        result = search(engine)
        assert result == NotFound(SearchScope.ALL)


class TestIssueScope:
    """Tests for a specifically requested issue."""

    def test_found(self, tree, engine):
        tree.item("2.1-a", "in-progress")
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert found_id(result) == "2.1-a"
        assert result.scope == SearchScope.ISSUE

    @pytest.mark.parametrize("target", ["2.1-missing", "not-qualified", ""])
    def test_not_found(self, tree, engine, target):
        tree.item("2.1-a", "open")
        result = search(engine, SearchScope.ISSUE, target)
        assert result == NotFound(SearchScope.ISSUE)

    def test_already_complete(self, tree, engine):
        tree.item("2.1-a", "done")
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert result == AlreadyComplete("2.1-a")
        assert result.to_dict()["message"] == "Issue 2.1-a is already closed - no work needed"

    def test_blocked_status_not_executable(self, tree, engine):
        tree.item("2.1-a", "blocked")
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert result == NotExecutable("2.1-a", "Issue status is blocked (not open/in-progress)")

    def test_unreadable_status(self, tree, engine):
        tree.raw_item("2.1-a", "# nothing\n")
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert result == NotExecutable("2.1-a", "Issue 2.1-a has no readable status")

    def test_missing_state_file(self, tree, engine):
        (tree.version_dir("2.1") / "a").mkdir()
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert isinstance(result, NotExecutable)

    def test_blocked_lists_all_unsatisfied(self, tree, engine):
        tree.item("2.1-one", "open")
        tree.item("2.1-two", "closed")
        tree.item("2.1-a", "open", deps=["2.1-one", "2.1-two", "ghost"])
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert result == Blocked("2.1-a", ("2.1-one", "ghost"))
        assert result.to_dict()["blocking"] == ["2.1-one", "ghost"]

    def test_existing_worktree(self, tree, engine):
        tree.item("2.1.4-a", "open")
        path = tree.worktree("2.1.4-a")
        result = search(engine, SearchScope.ISSUE, "2.1.4-a")
        assert isinstance(result, ExistingWorktree)
        data = result.to_dict()
        assert data["worktree_path"] == str(path)
        assert (data["major"], data["minor"], data["patch"]) == ("2", "1", "4")

    def test_locked_by_other_is_not_executable(self, tree, engine, locks):
        tree.item("2.1-a", "open")
        locks.acquire("2.1-a", SESSION_B)
        result = search(engine, SearchScope.ISSUE, "2.1-a")
        assert result == NotExecutable("2.1-a", f"Issue locked by another session: {SESSION_B}")

    def test_own_lock_is_found(self, tree, engine, locks):
        tree.item("2.1-a", "open")
        locks.acquire("2.1-a", SESSION_A)
        assert found_id(search(engine, SearchScope.ISSUE, "2.1-a")) == "2.1-a"

    def test_ignores_postconditions(self, tree, engine):
        tree.plan("2.1", ["final-release"])
        tree.item("2.1-feature", "open")
        tree.item("2.1-final-release", "open")
        assert found_id(search(engine, SearchScope.ISSUE, "2.1-final-release")) == "2.1-final-release"


class TestBareNameScope:
    """Tests for bare-name resolution."""

    def test_resolves_first_match_in_version_order(self, tree, engine):
        tree.item("2.0-setup", "open")
        tree.item("1.3-setup", "open")
        result = search(engine, SearchScope.BARE_NAME, "setup")
        assert found_id(result) == "1.3-setup"
        assert result.scope == SearchScope.ISSUE

    def test_resolves_patch_items(self, tree, engine):
        tree.item("2.1.2-hotfix", "closed")
        assert search(engine, SearchScope.BARE_NAME, "hotfix") == AlreadyComplete("2.1.2-hotfix")

    def test_unknown_name(self, tree, engine):
        tree.item("2.1-a", "open")
        assert search(engine, SearchScope.BARE_NAME, "zzz") == NotFound(SearchScope.BARE_NAME)

    def test_invalid_name(self, engine):
        result = search(engine, SearchScope.BARE_NAME, "../etc")
        assert result == DiscoveryError("Invalid bare issue name format: ../etc")


class TestInMemoryRepository:
    """Selection logic against the in-memory fake, without filesystem races."""

    @pytest.fixture
    def fake_engine(self, memory_repo, tmp_path):
        return DiscoveryEngine(memory_repo, LockManager(tmp_path / "locks"))

    def test_unreadable_candidate_skipped(self, memory_repo, fake_engine):
        broken = memory_repo.add("1.0-a-broken", "open")
        memory_repo.add("1.0-b-good", "open")
        memory_repo.unreadable.add(broken)
        assert found_id(search(fake_engine)) == "1.0-b-good"

    @pytest.mark.parametrize("scope,target", [
        (SearchScope.ALL, ""),
        (SearchScope.MAJOR, "1"),
        (SearchScope.MINOR, "1.0"),
    ])
    def test_inaccessible_candidate_does_not_abort_scan(self, memory_repo, fake_engine, scope, target):
        memory_repo.inaccessible.add(memory_repo.add("1.0-a-broken", "open"))
        memory_repo.add("1.0-b-good", "open")
        assert found_id(search(fake_engine, scope, target)) == "1.0-b-good"

    def test_inaccessible_dependency_fails_closed(self, memory_repo, fake_engine):
        dep = memory_repo.add("1.0-a-dep", "closed")
        memory_repo.inaccessible.add(dep)
        memory_repo.add("1.0-b-user", "open", deps=["1.0-a-dep"])
        memory_repo.add("1.0-c-other", "open")
        assert found_id(search(fake_engine)) == "1.0-c-other"
        assert search(fake_engine, SearchScope.ISSUE, "1.0-b-user") == Blocked("1.0-b-user", ("1.0-a-dep",))

    def test_found_reports_repository_path(self, memory_repo, fake_engine):
        memory_repo.add("3-top", "open")
        result = search(fake_engine)
        assert result.issue_path == "mem://3-top"
        assert "minor" not in result.to_dict()

    def test_worktree_marks_item_in_use(self, memory_repo, fake_engine):
        memory_repo.worktrees.add(memory_repo.add("1.0-a", "open"))
        assert isinstance(search(fake_engine), NotFound)
        result = search(fake_engine, SearchScope.ISSUE, "1.0-a")
        assert result == ExistingWorktree(IssueId.parse("1.0-a"), "mem://1.0-a", "/worktrees/1.0-a")

    def test_version_gate_blocks_all_minor_items(self, memory_repo, fake_engine):
        memory_repo.add("1.0-prereq", "in-progress")
        memory_repo.worktrees.add(IssueId.parse("1.0-prereq"))
        memory_repo.add("1.1-a", "open")
        memory_repo.add("1.1.1-b", "open")
        memory_repo.add_version_file("1.1", "STATE.md", "- **Dependencies:** [1.0-prereq]\n")
        assert isinstance(search(fake_engine), NotFound)

    def test_closed_parent_with_open_child_skipped(self, memory_repo, fake_engine):
        memory_repo.add("1.0-a-parent", "closed", children=["b-child"])
        memory_repo.add("1.0-b-child", "open")
        memory_repo.worktrees.add(IssueId.parse("1.0-b-child"))
        assert isinstance(search(fake_engine), NotFound)
        result = search(fake_engine, SearchScope.ISSUE, "1.0-a-parent")
        assert result == NotExecutable("1.0-a-parent", "Issue 1.0-a-parent has no readable status")
