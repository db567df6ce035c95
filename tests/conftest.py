"""Shared fixtures: on-disk issue trees and an in-memory repository."""

from typing import Optional

import pytest

from issuectl.issues import FilesystemRepository, IssueId, Version, WorkItemRepository
from issuectl.lib.config import ProjectConfig
from issuectl.runner.locking import LockManager

SESSION_A = "11111111-2222-3333-4444-555555555555"
SESSION_B = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


def state_md(status: str, deps: Optional[list[str]] = None, children: Optional[list[str]] = None) -> str:
    """Render a STATE.md document."""
    lines = ["# State", "", f"- **Status:** {status}", "- **Progress:** 0%"]
    if deps is not None:
        lines.append(f"- **Dependencies:** [{', '.join(deps)}]")
    if children is not None:
        lines += ["", "## Decomposed Into"] + [f"- {child}" for child in children]
    return "\n".join(lines) + "\n"


class TreeBuilder:
    """Writes issue trees under <root>/issues for a test."""

    def __init__(self, config: ProjectConfig):
        self.config = config

    def version_dir(self, version: str):
        path = self.config.issues_path.joinpath(*Version.parse(version).dir_parts)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def item(self, issue_id: str, status: str = "open", deps=None, children=None):
        parsed = IssueId.parse(issue_id)
        path = self.version_dir(str(parsed.version)) / parsed.name
        path.mkdir(parents=True, exist_ok=True)
        (path / "STATE.md").write_text(state_md(status, deps, children))
        return path

    def raw_item(self, issue_id: str, text: str):
        parsed = IssueId.parse(issue_id)
        path = self.version_dir(str(parsed.version)) / parsed.name
        path.mkdir(parents=True, exist_ok=True)
        (path / "STATE.md").write_text(text)
        return path

    def version_deps(self, version: str, deps: list[str]):
        text = f"# Version {version}\n\n- **Dependencies:** [{', '.join(deps)}]\n"
        (self.version_dir(version) / "STATE.md").write_text(text)

    def plan(self, version: str, postconditions: list[str]):
        lines = [f"# Plan {version}", "", "## Post-conditions"]
        lines += [f"- [issue] {name}" for name in postconditions]
        (self.version_dir(version) / "PLAN.md").write_text("\n".join(lines) + "\n")

    def worktree(self, issue_id: str):
        path = self.config.worktrees_path / issue_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def set_status(self, issue_id: str, status: str):
        parsed = IssueId.parse(issue_id)
        path = self.config.issues_path.joinpath(*parsed.version.dir_parts, parsed.name, "STATE.md")
        text = path.read_text()
        lines = [f"- **Status:** {status}" if line.startswith("- **Status:**") else line
                 for line in text.splitlines()]
        path.write_text("\n".join(lines) + "\n")


class InMemoryRepository(WorkItemRepository):
    """WorkItemRepository over dicts, for selection-logic tests without a filesystem."""

    def __init__(self, dependency_search_depth: int = 5):
        super().__init__(dependency_search_depth)
        self.versions: set[Version] = set()
        self.items: set[IssueId] = set()
        self.states: dict[IssueId, str] = {}
        self.version_files: dict[tuple[Version, str], str] = {}
        self.worktrees: set[IssueId] = set()
        self.unreadable: set[IssueId] = set()
        # Items whose directory cannot even be stat'ed
        self.inaccessible: set[IssueId] = set()

    def _add_version(self, version: Version):
        while version is not None:
            self.versions.add(version)
            version = version.parent

    def add(self, issue_id: str, status: str = "open", deps=None, children=None) -> IssueId:
        parsed = IssueId.parse(issue_id)
        self._add_version(parsed.version)
        self.items.add(parsed)
        self.states[parsed] = state_md(status, deps, children)
        return parsed

    def add_version_file(self, version: str, filename: str, text: str):
        parsed = Version.parse(version)
        self._add_version(parsed)
        self.version_files[(parsed, filename)] = text

    def list_versions(self, parent=None):
        children = [v for v in self.versions if v.parent == parent]
        return sorted(children, key=lambda v: v.dirname)

    def version_exists(self, version):
        return version in self.versions

    def list_item_names(self, version):
        return sorted(i.name for i in self.items if i.version == version)

    def item_exists(self, issue_id):
        return issue_id in self.items

    def has_state(self, issue_id):
        if issue_id in self.inaccessible:
            raise PermissionError(f"Permission denied: {issue_id}")
        return issue_id in self.states

    def read_state_text(self, issue_id):
        if issue_id in self.unreadable:
            raise PermissionError(f"Permission denied: {issue_id}")
        if issue_id not in self.states:
            raise FileNotFoundError(f"File not found: {issue_id}")
        return self.states[issue_id]

    def write_state_text(self, issue_id, text):
        self.states[issue_id] = text

    def read_version_file(self, version, filename):
        return self.version_files.get((version, filename))

    def item_path(self, issue_id):
        return f"mem://{issue_id}"

    def worktree_path(self, issue_id):
        return f"/worktrees/{issue_id}" if issue_id in self.worktrees else None


@pytest.fixture
def project(tmp_path) -> ProjectConfig:
    config = ProjectConfig(root=tmp_path)
    config.issues_path.mkdir()
    return config


@pytest.fixture
def tree(project) -> TreeBuilder:
    return TreeBuilder(project)


@pytest.fixture
def repo(project) -> FilesystemRepository:
    return FilesystemRepository(project)


@pytest.fixture
def locks(project) -> LockManager:
    return LockManager.from_config(project)


@pytest.fixture
def memory_repo() -> InMemoryRepository:
    return InMemoryRepository()
