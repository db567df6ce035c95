"""
Data models for the work-item tree.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from issuectl.lib.constants import (
    BARE_NAME_PATTERN,
    MAJOR_DIR_PATTERN,
    MINOR_DIR_PATTERN,
    PATCH_DIR_PATTERN,
    QUALIFIED_ID_PATTERN,
    VERSION_TARGET_PATTERN,
)
from issuectl.lib.errors import StatusError, ValidationError


class IssueStatus(Enum):
    """Canonical status values as written in STATE.md."""

    OPEN = "open"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"
    BLOCKED = "blocked"

    def __str__(self) -> str:
        return self.value

    @property
    def is_workable(self) -> bool:
        return self in (IssueStatus.OPEN, IssueStatus.IN_PROGRESS)


# Legacy spellings still found in older STATE.md files
STATUS_ALIASES = {
    "pending": IssueStatus.OPEN,
    "completed": IssueStatus.CLOSED,
    "complete": IssueStatus.CLOSED,
    "done": IssueStatus.CLOSED,
    "in_progress": IssueStatus.IN_PROGRESS,
    "active": IssueStatus.IN_PROGRESS,
}


def valid_status_values() -> str:
    """Comma-separated canonical values, sorted alphabetically."""
    return ", ".join(sorted(s.value for s in IssueStatus))


def normalize_status(raw: str, source: str = "") -> IssueStatus:
    """Map a raw status string to its canonical IssueStatus.

    Raises:
        StatusError: if the value is neither canonical nor a known alias
    """
    value = raw.strip()
    if value in STATUS_ALIASES:
        return STATUS_ALIASES[value]
    for status in IssueStatus:
        if status.value == value:
            return status
    where = f" in {source}" if source else ""
    raise StatusError(
        f"Unknown status '{value}'{where}. Valid values: {valid_status_values()}",
        path=source or None,
    )


@dataclass(frozen=True, order=True)
class Version:
    """A node in the major[.minor[.patch]] hierarchy.

    Empty strings mark absent components.
    """
    major: str
    minor: str = ""
    patch: str = ""

    def __post_init__(self):
        if self.patch and not self.minor:
            raise ValidationError(f"Version with patch but no minor: {self.major}..{self.patch}")

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse '2', '2.1' or '2.1.3'."""
        match = VERSION_TARGET_PATTERN.match(text.strip())
        if not match:
            raise ValidationError(f"Invalid version: '{text}'. Expected major[.minor[.patch]]")
        return cls(match.group(1), match.group(2) or "", match.group(3) or "")

    @classmethod
    def from_dirname(cls, name: str) -> Optional["Version"]:
        """Parse a version directory name (v2, v2.1, v2.1.3); None if it isn't one."""
        for pattern in (PATCH_DIR_PATTERN, MINOR_DIR_PATTERN, MAJOR_DIR_PATTERN):
            match = pattern.match(name)
            if match:
                groups = match.groups() + ("", "")
                return cls(groups[0], groups[1], groups[2])
        return None

    @property
    def level(self) -> str:
        if self.patch:
            return "patch"
        if self.minor:
            return "minor"
        return "major"

    @property
    def dirname(self) -> str:
        return f"v{self}"

    @property
    def parent(self) -> Optional["Version"]:
        if self.patch:
            return Version(self.major, self.minor)
        if self.minor:
            return Version(self.major)
        return None

    @property
    def dir_parts(self) -> list[str]:
        """Directory names from the issues root down to this node."""
        parts = [f"v{self.major}"]
        if self.minor:
            parts.append(f"v{self.major}.{self.minor}")
        if self.patch:
            parts.append(f"v{self.major}.{self.minor}.{self.patch}")
        return parts

    def child(self, component: str) -> "Version":
        if not self.minor:
            return Version(self.major, component)
        if not self.patch:
            return Version(self.major, self.minor, component)
        raise ValidationError(f"Patch version {self} has no child versions")

    def __str__(self) -> str:
        return ".".join(p for p in (self.major, self.minor, self.patch) if p)


@dataclass(frozen=True)
class IssueId:
    """Fully-qualified work item identifier, e.g. 2.1-fix-bug."""
    version: Version
    name: str

    @classmethod
    def parse(cls, text: str) -> "IssueId":
        match = QUALIFIED_ID_PATTERN.match(text.strip())
        if not match:
            raise ValidationError(
                f"Invalid issue id: '{text}'. Expected major[.minor[.patch]]-name")
        major, minor, patch, name = match.groups()
        return cls(Version(major, minor or "", patch or ""), name)

    @classmethod
    def try_parse(cls, text: str) -> Optional["IssueId"]:
        try:
            return cls.parse(text)
        except ValidationError:
            return None

    def __str__(self) -> str:
        return f"{self.version}-{self.name}"


def is_bare_name(text: str) -> bool:
    return bool(BARE_NAME_PATTERN.match(text))


@dataclass
class WorkItem:
    """A work item as read from its STATE.md.

    decomposed is True whenever a '## Decomposed Into' heading exists, even
    if the section lists no children.
    """
    id: IssueId
    status: IssueStatus
    path: str
    dependencies: list[str] = field(default_factory=list)
    decomposed: bool = False
    children: list[str] = field(default_factory=list)
