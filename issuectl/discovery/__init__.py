"""
Next-issue discovery: scoped search, eligibility rules and no-work diagnostics.
"""

from issuectl.discovery.engine import DiscoveryEngine
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

__all__ = [
    "DiscoveryEngine",
    "AlreadyComplete",
    "Blocked",
    "Decomposed",
    "DiscoveryError",
    "DiscoveryResult",
    "ExistingWorktree",
    "Found",
    "NotExecutable",
    "NotFound",
    "SearchOptions",
    "SearchScope",
]
