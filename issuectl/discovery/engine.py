"""
Next-issue discovery.

Walks the work-item tree in a deterministic order, filters out items that
cannot run yet, and claims the first eligible one with a lock. Eligibility
checks before the lock are advisory; only a successful acquire is a claim.
"""

import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Optional

from issuectl.discovery.results import (
    AlreadyComplete,
    Blocked,
    Decomposed,
    DiscoveryError,
    DiscoveryResult,
    ExistingWorktree,
    Found,
    NotExecutable,
    NotFound,
    SearchOptions,
    SearchScope,
)
from issuectl.issues.models import IssueId, IssueStatus, Version, is_bare_name
from issuectl.issues.repository import WorkItemRepository
from issuectl.lib.errors import IssueCtlError, ValidationError
from issuectl.runner.locking import Acquired, LockManager, Locked, LockState, validate_session_id

logger = logging.getLogger(__name__)


@dataclass
class _Scan:
    """Mutable state of one scoped search."""
    options: SearchOptions
    excluded: int = 0


class DiscoveryEngine:
    """Selects and claims the next executable work item."""

    def __init__(self, repo: WorkItemRepository, locks: LockManager):
        self.repo = repo
        self.locks = locks

    def find_next(self, options: SearchOptions) -> DiscoveryResult:
        """Run one discovery request. Never raises for malformed input."""
        try:
            validate_session_id(options.session_id)
            if options.scope == SearchScope.BARE_NAME:
                return self._find_bare_name(options)
            if options.scope == SearchScope.ISSUE:
                return self._find_issue(options.target, options)
            return self._search(options)
        except ValidationError as e:
            return DiscoveryError(str(e))
        except OSError as e:
            logger.warning(f"Discovery aborted: {e}")
            return DiscoveryError(f"Repository unreadable: {e}")

    # ----- scoped search (all / major / minor) -----

    def _search_roots(self, options: SearchOptions) -> list[Version]:
        if options.scope == SearchScope.ALL:
            return self.repo.list_versions(None)

        target = options.target.strip()
        if not target:
            raise ValidationError(f"Scope '{options.scope}' requires a target version")
        version = Version.parse(target[1:] if target.startswith("v") else target)
        if options.scope == SearchScope.MAJOR and version.level != "major":
            raise ValidationError(f"Scope 'major' expects a major version, got '{target}'")
        if options.scope == SearchScope.MINOR and version.level == "major":
            raise ValidationError(f"Scope 'minor' expects major.minor[.patch], got '{target}'")

        if not self.repo.version_exists(version):
            logger.debug(f"Version {version} does not exist")
            return []
        return [version]

    def _search(self, options: SearchOptions) -> DiscoveryResult:
        scan = _Scan(options)
        for version in self._search_roots(options):
            if version.level == "major":
                found = self._search_major(version, scan)
            elif version.level == "minor":
                found = self._search_minor(version, scan)
            else:
                found = self._search_items(version, scan)
            if found:
                return found
        return NotFound(options.scope, options.exclude_pattern, scan.excluded)

    def _search_major(self, major: Version, scan: _Scan) -> Optional[Found]:
        # Major-only layout: items directly under v<N>/
        found = self._search_items(major, scan)
        if found:
            return found
        for minor in self.repo.list_versions(major):
            if not self._version_ready(minor):
                continue
            found = self._search_minor(minor, scan)
            if found:
                return found
        return None

    def _search_minor(self, minor: Version, scan: _Scan) -> Optional[Found]:
        found = self._search_items(minor, scan)
        if found:
            return found
        for patch in self.repo.list_versions(minor):
            found = self._search_items(patch, scan)
            if found:
                return found
        return None

    def _version_ready(self, version: Version) -> bool:
        """Version-level dependencies gate the whole node."""
        try:
            blocking = self.repo.blocking_dependencies(self.repo.version_dependencies(version))
        except OSError as e:
            logger.debug(f"Skipping version {version}: dependencies unreadable ({e})")
            return False
        if blocking:
            logger.debug(f"Skipping version {version}: blocked by {', '.join(blocking)}")
            return False
        return True

    def _search_items(self, version: Version, scan: _Scan) -> Optional[Found]:
        options = scan.options
        for name in self.repo.list_item_names(version):
            issue_id = IssueId(version, name)
            try:
                if not self.repo.has_state(issue_id):
                    continue
            except OSError as e:
                logger.debug(f"Skipping {issue_id}: {e}")
                continue

            if options.exclude_pattern and fnmatchcase(name, options.exclude_pattern):
                scan.excluded += 1
                continue

            if self.locks.state(str(issue_id), options.session_id) == LockState.LOCKED_BY_OTHER:
                logger.debug(f"Skipping {issue_id}: locked by another session")
                continue

            reason = self._skip_reason(issue_id, options)
            if reason:
                logger.debug(f"Skipping {issue_id}: {reason}")
                continue

            result = self.locks.acquire(str(issue_id), options.session_id)
            if not isinstance(result, Acquired):
                logger.debug(f"Skipping {issue_id}: {result.to_dict().get('message')}")
                continue

            return Found(issue_id, self.repo.item_path(issue_id), options.scope)
        return None

    def _skip_reason(self, issue_id: IssueId, options: SearchOptions) -> Optional[str]:
        """Why a scanned candidate is ineligible, or None if it may be claimed."""
        try:
            item = self.repo.load_item(issue_id)
        except (OSError, IssueCtlError) as e:
            return f"unreadable ({e})"

        if not item.status.is_workable:
            return f"status is {item.status}"
        if item.decomposed and not self.repo.children_closed(item):
            return "decomposed parent with open sub-issues"

        blocking = self.repo.blocking_dependencies(item.dependencies)
        if blocking:
            return f"blocked by {', '.join(blocking)}"

        if not options.override_postconditions and self._postcondition_pending(issue_id):
            return "post-condition item waiting on the rest of its version"

        try:
            worktree = self.repo.worktree_path(issue_id)
        except OSError as e:
            return f"worktree unreadable ({e})"
        if worktree:
            return f"existing worktree {worktree}"
        return None

    def _postcondition_pending(self, issue_id: IssueId) -> bool:
        # Patch items are gated by their minor version's PLAN.md
        version = issue_id.version
        gate = version.parent if version.level == "patch" else version
        try:
            if issue_id.name not in self.repo.postcondition_items(gate):
                return False
            return not self.repo.postconditions_satisfied(gate)
        except OSError as e:
            logger.debug(f"PLAN.md for {gate} unreadable, treating {issue_id} as gated: {e}")
            return True

    # ----- single issue -----

    def _find_issue(self, target: str, options: SearchOptions) -> DiscoveryResult:
        issue_id = IssueId.try_parse(target)
        if issue_id is None or not self.repo.item_exists(issue_id):
            return NotFound(SearchScope.ISSUE)
        key = str(issue_id)

        try:
            item = self.repo.load_item(issue_id)
        except (OSError, IssueCtlError) as e:
            logger.debug(f"Cannot read {key}: {e}")
            return NotExecutable(key, f"Issue {key} has no readable status")

        if item.status == IssueStatus.CLOSED:
            return AlreadyComplete(key)
        if not item.status.is_workable:
            return NotExecutable(key, f"Issue status is {item.status} (not open/in-progress)")

        if item.decomposed and not self.repo.children_closed(item):
            return Decomposed(key)

        blocking = self.repo.blocking_dependencies(item.dependencies)
        if blocking:
            return Blocked(key, tuple(blocking))

        worktree = self.repo.worktree_path(issue_id)
        if worktree:
            return ExistingWorktree(issue_id, item.path, worktree)

        result = self.locks.acquire(key, options.session_id)
        if isinstance(result, Locked):
            return NotExecutable(key, f"Issue locked by another session: {result.owner}")
        if not isinstance(result, Acquired):
            return NotExecutable(key, result.to_dict()["message"])

        return Found(issue_id, item.path, SearchScope.ISSUE)

    def _find_bare_name(self, options: SearchOptions) -> DiscoveryResult:
        name = options.target.strip()
        if not is_bare_name(name):
            return DiscoveryError(f"Invalid bare issue name format: {options.target}")

        for issue_id in self.repo.iter_item_ids():
            if issue_id.name == name:
                logger.debug(f"Resolved bare name '{name}' to {issue_id}")
                return self._find_issue(str(issue_id), options)
        return NotFound(SearchScope.BARE_NAME)
