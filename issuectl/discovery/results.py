"""
Discovery request options and outcome types.

Every find_next() call returns exactly one DiscoveryResult variant; callers
branch on the concrete class (or on the "status" key of to_dict()).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from issuectl.issues.models import IssueId


class SearchScope(Enum):
    ALL = "all"
    MAJOR = "major"
    MINOR = "minor"
    ISSUE = "issue"
    BARE_NAME = "bare_name"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SearchOptions:
    """Parameters of one discovery call.

    target is a version ("2", "2.1", "2.1.3") for MAJOR/MINOR, a qualified
    issue id for ISSUE, or a bare name for BARE_NAME. It is ignored for ALL.
    """
    scope: SearchScope
    session_id: str
    target: str = ""
    exclude_pattern: str = ""
    override_postconditions: bool = False


def _version_fields(issue_id: IssueId) -> dict:
    """major/minor/patch keys, omitting absent components."""
    version = issue_id.version
    fields = {"major": version.major}
    if version.minor:
        fields["minor"] = version.minor
    if version.patch:
        fields["patch"] = version.patch
    return fields


@dataclass(frozen=True)
class DiscoveryResult:
    """Base of the discovery outcome hierarchy."""

    def to_dict(self) -> dict:
        raise NotImplementedError


@dataclass(frozen=True)
class Found(DiscoveryResult):
    """An eligible item whose lock is now held by the requesting session."""
    issue_id: IssueId
    issue_path: str
    scope: SearchScope

    @property
    def issue_name(self) -> str:
        return self.issue_id.name

    def to_dict(self) -> dict:
        return {
            "status": "found",
            "issue_id": str(self.issue_id),
            **_version_fields(self.issue_id),
            "issue_name": self.issue_name,
            "issue_path": self.issue_path,
            "scope": str(self.scope),
            "lock_status": "acquired",
        }


@dataclass(frozen=True)
class NotFound(DiscoveryResult):
    scope: SearchScope
    exclude_pattern: str = ""
    excluded_count: int = 0
    diagnostics: Optional[dict] = None

    @property
    def message(self) -> str:
        if self.excluded_count > 0:
            return f"No executable issues found ({self.excluded_count} excluded by pattern)"
        return "No executable issues found"

    def to_dict(self) -> dict:
        data = {
            "status": "not_found",
            "message": self.message,
            "scope": str(self.scope),
            "exclude_pattern": self.exclude_pattern,
            "excluded_count": self.excluded_count,
        }
        if self.diagnostics:
            data.update(self.diagnostics)
        return data


@dataclass(frozen=True)
class AlreadyComplete(DiscoveryResult):
    issue_id: str

    def to_dict(self) -> dict:
        return {
            "status": "already_complete",
            "issue_id": self.issue_id,
            "message": f"Issue {self.issue_id} is already closed - no work needed",
        }


@dataclass(frozen=True)
class NotExecutable(DiscoveryResult):
    issue_id: str
    reason: str

    def to_dict(self) -> dict:
        return {"status": "not_executable", "issue_id": self.issue_id, "message": self.reason}


@dataclass(frozen=True)
class Blocked(DiscoveryResult):
    issue_id: str
    blocking: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "status": "blocked",
            "issue_id": self.issue_id,
            "message": "Dependencies not satisfied",
            "blocking": list(self.blocking),
        }


@dataclass(frozen=True)
class Decomposed(DiscoveryResult):
    issue_id: str

    def to_dict(self) -> dict:
        return {
            "status": "decomposed",
            "issue_id": self.issue_id,
            "message": "Issue is a decomposed parent task - execute sub-issues instead",
        }


@dataclass(frozen=True)
class ExistingWorktree(DiscoveryResult):
    """A worktree directory exists for the item; another session is probably on it."""
    issue_id: IssueId
    issue_path: str
    worktree_path: str

    def to_dict(self) -> dict:
        return {
            "status": "existing_worktree",
            "issue_id": str(self.issue_id),
            **_version_fields(self.issue_id),
            "issue_name": self.issue_id.name,
            "issue_path": self.issue_path,
            "worktree_path": self.worktree_path,
            "message": "Issue has existing worktree - likely in use by another session",
        }


@dataclass(frozen=True)
class DiscoveryError(DiscoveryResult):
    """Malformed request or unreadable repository. A result, not an exception."""
    message: str

    def to_dict(self) -> dict:
        return {"status": "error", "message": self.message}
