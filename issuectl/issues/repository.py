"""
Work-item repository for issuectl.

The on-disk tree is laid out as:
  <root>/issues/v<MAJOR>/[v<MAJOR>.<MINOR>/[v<MAJOR>.<MINOR>.<PATCH>/]]<name>/STATE.md
  <root>/issues/v<MAJOR>.<MINOR>/PLAN.md      (post-condition markers)
  <root>/issues/v<MAJOR>.<MINOR>/STATE.md     (version-level dependencies)

WorkItemRepository holds the tree-reading rules on top of a handful of
storage primitives; FilesystemRepository implements those primitives with
pathlib. Nothing in here decides eligibility or takes locks.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, Optional

from issuectl.issues.models import IssueId, IssueStatus, Version, WorkItem, is_bare_name
from issuectl.issues.statefile import (
    parse_decomposition,
    parse_dependencies,
    parse_postconditions,
    parse_status,
)
from issuectl.lib.config import ProjectConfig
from issuectl.lib.constants import PLAN_FILE, STATE_FILE, VERSION_DIR_PATTERN
from issuectl.lib.errors import DiagnosticsError, IssueCtlError, StatusError

logger = logging.getLogger(__name__)


class WorkItemRepository(ABC):
    """Read/write access to the work-item tree."""

    def __init__(self, dependency_search_depth: int = 5):
        self.dependency_search_depth = dependency_search_depth

    # ----- storage primitives -----

    @abstractmethod
    def list_versions(self, parent: Optional[Version] = None) -> list[Version]:
        """Child version nodes of parent (majors when parent is None), sorted by directory name."""

    @abstractmethod
    def version_exists(self, version: Version) -> bool:
        """True if the version node exists."""

    @abstractmethod
    def list_item_names(self, version: Version) -> list[str]:
        """Names of non-version child directories of a version node, sorted."""

    @abstractmethod
    def item_exists(self, issue_id: IssueId) -> bool:
        """True if the item directory exists, with or without a STATE.md."""

    @abstractmethod
    def has_state(self, issue_id: IssueId) -> bool:
        """True if the item has a STATE.md document."""

    @abstractmethod
    def read_state_text(self, issue_id: IssueId) -> str:
        """Raw STATE.md of an item. Raises OSError if unreadable."""

    @abstractmethod
    def write_state_text(self, issue_id: IssueId, text: str) -> None:
        """Replace an item's STATE.md."""

    @abstractmethod
    def read_version_file(self, version: Version, filename: str) -> Optional[str]:
        """A version node's own STATE.md/PLAN.md, or None if absent. Raises OSError if unreadable."""

    @abstractmethod
    def item_path(self, issue_id: IssueId) -> str:
        """Location of the item's directory, for reporting."""

    @abstractmethod
    def worktree_path(self, issue_id: IssueId) -> Optional[str]:
        """Path of an existing worktree for the item, or None."""

    # ----- items -----

    def load_item(self, issue_id: IssueId, _seen: Optional[set[str]] = None) -> WorkItem:
        """Read and validate one work item.

        Raises:
            OSError: STATE.md unreadable
            StatusError: status missing/unknown, or a closed decomposed parent
                has a child that is not closed
        """
        source = self.item_path(issue_id)
        lines = self.read_state_text(issue_id).splitlines()
        status = parse_status(lines, source)
        decomposed, children = parse_decomposition(lines)
        item = WorkItem(
            id=issue_id,
            status=status,
            path=source,
            dependencies=parse_dependencies(lines),
            decomposed=decomposed,
            children=children,
        )

        if status == IssueStatus.CLOSED and decomposed:
            if not self.children_closed(item, _seen):
                raise StatusError(
                    f"Decomposed parent issue {issue_id} marked 'closed' but sub-issues "
                    f"are not all closed in {source}",
                    path=source,
                )
        return item

    def resolve_child(self, parent: IssueId, ref: str) -> Optional[IssueId]:
        """Resolve a '## Decomposed Into' entry; None for malformed references."""
        qualified = IssueId.try_parse(ref)
        if qualified:
            return qualified
        if is_bare_name(ref):
            return IssueId(parent.version, ref)
        logger.debug(f"Ignoring malformed sub-issue reference '{ref}' in {parent}")
        return None

    def children_closed(self, item: WorkItem, _seen: Optional[set[str]] = None) -> bool:
        """True if every resolvable child of a decomposed parent is closed."""
        seen = set(_seen or ())
        seen.add(str(item.id))
        for ref in item.children:
            child_id = self.resolve_child(item.id, ref)
            if child_id is None:
                continue
            if str(child_id) in seen:
                logger.warning(f"Decomposition cycle: {item.id} lists ancestor {child_id}")
                return False
            try:
                child = self.load_item(child_id, seen)
            except (OSError, IssueCtlError) as e:
                logger.debug(f"Sub-issue {child_id} of {item.id} unreadable: {e}")
                return False
            if child.status != IssueStatus.CLOSED:
                return False
        return True

    def item_status(self, issue_id: IssueId) -> Optional[IssueStatus]:
        """Status of an item, or None if it cannot be determined."""
        try:
            return self.load_item(issue_id).status
        except (OSError, IssueCtlError) as e:
            logger.debug(f"Status of {issue_id} undeterminable: {e}")
            return None

    def set_status(self, issue_id: IssueId, status: IssueStatus) -> Optional[IssueStatus]:
        """Rewrite an item's status line through the lifecycle state machine.

        Returns the status that was replaced, or None when the item already
        had that status.

        Raises:
            InvalidTransition, StatusError, OSError
        """
        from issuectl.workflow.fsm import IssueFSM

        fsm = IssueFSM(self, issue_id)
        previous = fsm.status
        return previous if fsm.transition_to(status) else None

    # ----- dependencies -----

    def resolve_dependency(self, ref: str) -> Optional[IssueId]:
        """Resolve a dependency reference to an existing item.

        Qualified ids resolve by direct path; anything else (or a qualified id
        whose directory is missing) falls back to a bounded walk by name.
        """
        qualified = IssueId.try_parse(ref)
        if qualified and self.has_state(qualified):
            return qualified
        if not qualified and not is_bare_name(ref):
            return None
        return self.find_by_name(ref, self.dependency_search_depth)

    def dependency_satisfied(self, ref: str) -> bool:
        """Fail closed: unresolvable or unreadable dependencies are unsatisfied."""
        try:
            dep_id = self.resolve_dependency(ref)
        except OSError as e:
            logger.debug(f"Dependency {ref} unresolvable: {e}")
            return False
        if dep_id is None:
            return False
        return self.item_status(dep_id) == IssueStatus.CLOSED

    def blocking_dependencies(self, dependencies: list[str]) -> list[str]:
        return [dep for dep in dependencies if not self.dependency_satisfied(dep)]

    def version_dependencies(self, version: Version) -> list[str]:
        text = self.read_version_file(version, STATE_FILE)
        if text is None:
            return []
        return parse_dependencies(text.splitlines())

    # ----- post-conditions -----

    def postcondition_items(self, version: Version) -> list[str]:
        return parse_postconditions(self.read_version_file(version, PLAN_FILE))

    def postconditions_satisfied(self, version: Version) -> bool:
        """True once every non-post-condition item directly in version is closed."""
        exempt = set(self.postcondition_items(version))
        for name in self.list_item_names(version):
            if name in exempt:
                continue
            if self.item_status(IssueId(version, name)) != IssueStatus.CLOSED:
                return False
        return True

    # ----- traversal -----

    def iter_item_ids(self, limit: Optional[int] = None) -> Iterator[IssueId]:
        """Every item with a STATE.md, in version order.

        Order per major: its direct items, then per minor its direct items
        followed by its patch nodes. limit bounds the number of tree entries
        visited.
        """
        visited = 0

        def tick():
            nonlocal visited
            visited += 1
            if limit is not None and visited > limit:
                raise DiagnosticsError(
                    f"Diagnostic scan exceeded safety threshold: the issue tree contains more than "
                    f"{limit} entries. Consider archiving old issues.")

        def walk(version: Version):
            tick()
            for name in self.list_item_names(version):
                tick()
                issue_id = IssueId(version, name)
                try:
                    present = self.has_state(issue_id)
                except OSError as e:
                    logger.debug(f"Skipping {issue_id}: {e}")
                    continue
                if present:
                    yield issue_id
            if version.level != "patch":
                for child in self.list_versions(version):
                    yield from walk(child)

        for major in self.list_versions(None):
            yield from walk(major)

    def find_by_name(self, name: str, max_depth: int) -> Optional[IssueId]:
        """First item (version order) whose directory is named name.

        max_depth counts path components below the issues root down to
        STATE.md, so 5 reaches patch-level items.
        """
        for issue_id in self.iter_item_ids():
            if len(issue_id.version.dir_parts) + 2 > max_depth:
                continue
            if issue_id.name == name:
                return issue_id
        return None


class FilesystemRepository(WorkItemRepository):
    """WorkItemRepository backed by the project's issues/ directory."""

    def __init__(self, config: ProjectConfig):
        super().__init__(config.dependency_search_depth)
        self.config = config
        self.issues_dir = config.issues_path
        self.worktrees_dir = config.worktrees_path

    def _version_dir(self, version: Version) -> Path:
        return self.issues_dir.joinpath(*version.dir_parts)

    def _item_dir(self, issue_id: IssueId) -> Path:
        return self._version_dir(issue_id.version) / issue_id.name

    def _subdirs(self, directory: Path) -> list[Path]:
        if not directory.is_dir():
            return []
        return sorted((d for d in directory.iterdir() if d.is_dir()), key=lambda d: d.name)

    def list_versions(self, parent: Optional[Version] = None) -> list[Version]:
        if parent is None:
            directory, expected = self.issues_dir, "major"
        elif parent.level == "patch":
            return []
        else:
            directory, expected = self._version_dir(parent), parent.child("0").level
        versions = []
        for d in self._subdirs(directory):
            version = Version.from_dirname(d.name)
            if version is None or version.level != expected:
                continue
            # v3.1 under v2/ is misfiled; ignore it rather than guess
            if parent is not None and version.parent != parent:
                continue
            versions.append(version)
        return versions

    def version_exists(self, version: Version) -> bool:
        return self._version_dir(version).is_dir()

    def list_item_names(self, version: Version) -> list[str]:
        return [d.name for d in self._subdirs(self._version_dir(version))
                if not VERSION_DIR_PATTERN.match(d.name)]

    def item_exists(self, issue_id: IssueId) -> bool:
        return self._item_dir(issue_id).is_dir()

    def has_state(self, issue_id: IssueId) -> bool:
        return (self._item_dir(issue_id) / STATE_FILE).is_file()

    def read_state_text(self, issue_id: IssueId) -> str:
        path = self._item_dir(issue_id) / STATE_FILE
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return path.read_text()

    def write_state_text(self, issue_id: IssueId, text: str) -> None:
        path = self._item_dir(issue_id) / STATE_FILE
        tmp = path.with_name(f"{STATE_FILE}.tmp")
        tmp.write_text(text)
        tmp.replace(path)

    def read_version_file(self, version: Version, filename: str) -> Optional[str]:
        path = self._version_dir(version) / filename
        if not path.is_file():
            return None
        return path.read_text()

    def item_path(self, issue_id: IssueId) -> str:
        return str(self._item_dir(issue_id))

    def worktree_path(self, issue_id: IssueId) -> Optional[str]:
        path = self.worktrees_dir / str(issue_id)
        return str(path) if path.is_dir() else None
