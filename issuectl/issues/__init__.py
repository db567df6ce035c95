"""
Work-item tree for issuectl.

Models the version hierarchy and the work items stored under it, and
provides repository access to their STATE.md/PLAN.md documents.
"""

from issuectl.issues.models import (
    IssueId,
    IssueStatus,
    Version,
    WorkItem,
    normalize_status,
)
from issuectl.issues.repository import FilesystemRepository, WorkItemRepository

__all__ = [
    "IssueId",
    "IssueStatus",
    "Version",
    "WorkItem",
    "normalize_status",
    "FilesystemRepository",
    "WorkItemRepository",
]
