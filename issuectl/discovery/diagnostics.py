"""
Diagnostics for an empty discovery result.

When `next` finds nothing, the caller gets a summary of why: which items
are blocked and by what, which are locked, and whether any dependency
chains loop back on themselves.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from issuectl.issues.models import IssueId, IssueStatus, is_bare_name
from issuectl.issues.repository import WorkItemRepository
from issuectl.issues.statefile import parse_decomposition, parse_dependencies, parse_status
from issuectl.lib.errors import DiagnosticsError, IssueCtlError
from issuectl.runner.locking import LockManager

logger = logging.getLogger(__name__)


@dataclass
class _IndexEntry:
    issue_id: IssueId
    status: Optional[IssueStatus]
    dependencies: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return self.status is not None and self.status.is_workable


class _IssueIndex:
    """Every item in the tree keyed by qualified id, plus a bare-name lookup."""

    def __init__(self, repo: WorkItemRepository, scan_limit: int):
        self.entries: dict[str, _IndexEntry] = {}
        self.by_name: dict[str, list[str]] = {}

        for issue_id in repo.iter_item_ids(limit=scan_limit):
            key = str(issue_id)
            self.entries[key] = self._read(repo, issue_id)
            self.by_name.setdefault(issue_id.name, []).append(key)

    @staticmethod
    def _read(repo: WorkItemRepository, issue_id: IssueId) -> _IndexEntry:
        try:
            lines = repo.read_state_text(issue_id).splitlines()
        except OSError as e:
            logger.debug(f"Diagnostics: cannot read {issue_id}: {e}")
            return _IndexEntry(issue_id, None)
        try:
            status = parse_status(lines, repo.item_path(issue_id))
        except IssueCtlError as e:
            logger.debug(f"Diagnostics: {e}")
            status = None
        _, children = parse_decomposition(lines)
        return _IndexEntry(issue_id, status, parse_dependencies(lines), children)

    def resolve(self, ref: str) -> list[str]:
        """Qualified ids that a dependency reference may mean.

        Ambiguous bare names yield every candidate so cycle detection sees
        all of them.
        """
        if ref in self.entries:
            return [ref]
        return list(self.by_name.get(ref, []))

    def resolve_child(self, parent: IssueId, ref: str) -> Optional[str]:
        qualified = IssueId.try_parse(ref)
        if qualified is None and is_bare_name(ref):
            qualified = IssueId(parent.version, ref)
        if qualified is None or str(qualified) not in self.entries:
            return None
        return str(qualified)

    def status_name(self, key: str) -> str:
        entry = self.entries.get(key)
        if entry is None:
            return "not_found"
        return str(entry.status) if entry.status else "unknown"


def _blocked_issues(index: _IssueIndex) -> list[dict]:
    blocked = []
    for key, entry in index.entries.items():
        if not entry.active or not entry.dependencies:
            continue
        blocked_by, reasons = [], []
        for ref in entry.dependencies:
            candidates = index.resolve(ref)
            if not candidates:
                blocked_by.append(ref)
                reasons.append(f"{ref} (not_found)")
                continue
            for dep in candidates:
                status = index.status_name(dep)
                if status != str(IssueStatus.CLOSED):
                    blocked_by.append(dep)
                    reasons.append(f"{dep} ({status})")
        if blocked_by:
            blocked.append({
                "issue_id": key,
                "blocked_by": blocked_by,
                "reason": ", ".join(reasons),
            })
    return blocked


def _dependency_graph(index: _IssueIndex) -> dict[str, list[str]]:
    """Edges from each active item to its dependencies and, for decomposed parents, its children."""
    graph: dict[str, list[str]] = {}
    for key, entry in index.entries.items():
        if not entry.active:
            continue
        targets: list[str] = []
        for ref in entry.dependencies:
            targets.extend(index.resolve(ref))
        for ref in entry.children:
            child = index.resolve_child(entry.issue_id, ref)
            if child:
                targets.append(child)
        if targets:
            graph[key] = list(dict.fromkeys(targets))
    return graph


def find_cycles(graph: dict[str, list[str]], max_depth: int) -> list[str]:
    """Dependency cycles as "a -> b -> a" strings, each reported once.

    Iterative depth-first search; a path longer than max_depth raises
    DiagnosticsError instead of exhausting memory.
    """
    visited: set[str] = set()
    reported: set[tuple[str, ...]] = set()
    cycles: list[str] = []

    for start in graph:
        if start in visited:
            continue
        path = [start]
        on_path = {start}
        stack = [iter(graph[start])]

        while stack:
            node = next(stack[-1], None)
            if node is None:
                stack.pop()
                done = path.pop()
                on_path.discard(done)
                visited.add(done)
                continue

            if node in on_path:
                cycle = path[path.index(node):]
                # Same cycle entered at a different node
                pivot = cycle.index(min(cycle))
                canonical = tuple(cycle[pivot:] + cycle[:pivot])
                if canonical not in reported:
                    reported.add(canonical)
                    cycles.append(" -> ".join(cycle + [node]))
                continue
            if node in visited or node not in graph:
                continue

            if len(path) >= max_depth:
                raise DiagnosticsError(
                    f"Dependency graph too deep for cycle detection: path exceeds {max_depth} issues")
            path.append(node)
            on_path.add(node)
            stack.append(iter(graph[node]))

    return cycles


def gather(
    repo: WorkItemRepository,
    locks: LockManager,
    scan_limit: int = 100_000,
    max_cycle_depth: int = 1000,
) -> dict:
    """Summarize why no issue is available.

    Raises:
        DiagnosticsError: the tree or the dependency graph exceeds its safety limit
    """
    index = _IssueIndex(repo, scan_limit)

    diagnostics: dict = {}
    blocked = _blocked_issues(index)
    if blocked:
        diagnostics["blocked_issues"] = blocked

    locked = [{"issue_id": entry.issue, "locked_by": entry.session} for entry in locks.list()]
    if locked:
        diagnostics["locked_issues"] = locked

    cycles = find_cycles(_dependency_graph(index), max_cycle_depth)
    if cycles:
        diagnostics["circular_dependencies"] = cycles

    diagnostics["closed_count"] = sum(
        1 for entry in index.entries.values() if entry.status == IssueStatus.CLOSED)
    diagnostics["total_count"] = len(index.entries)
    return diagnostics
