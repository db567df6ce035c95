"""
STATE.md / PLAN.md parser for the work-item tree.

Extracts status, dependencies, decomposition and post-condition markers
from the markdown documents that make up the work-item tree.
"""

import re

from issuectl.issues.models import IssueStatus, normalize_status
from issuectl.lib.errors import StatusError

STATUS_PREFIX = "- **Status:**"
DEPENDENCIES_PREFIX = "- **Dependencies:**"

STATUS_LINE_RE = re.compile(r'^- \*\*Status:\*\*.*$')
DEPENDENCIES_HEADING_RE = re.compile(r'^##\s+Dependencies\s*$')
DECOMPOSED_HEADING_RE = re.compile(r'^## Decomposed Into')
SECTION_HEADING_RE = re.compile(r'^## ')
BULLET_RE = re.compile(r'^- ([^(\s]+)')
POSTCONDITION_RE = re.compile(r'^- \[issue\] (.+)$')

_EMPTY_DEPENDENCIES = ("", "[]", "none")


def parse_status(lines: list[str], source: str = "") -> IssueStatus:
    """Return the normalized status from STATE.md lines.

    Raises:
        StatusError: if the status line is missing or its value is unknown
    """
    for line in lines:
        if line.startswith(STATUS_PREFIX):
            return normalize_status(line[len(STATUS_PREFIX):], source)

    where = f" in {source}" if source else ""
    raise StatusError(
        f"Status field missing{where}. STATE.md must contain a '{STATUS_PREFIX}' line.",
        path=source or None,
    )


def _section_bullets(lines: list[str], heading: re.Pattern) -> list[str] | None:
    """Return first tokens of '- ' bullets under a heading, or None if the heading is absent."""
    found = False
    items = []
    for line in lines:
        if not found:
            if heading.match(line):
                found = True
            continue
        if SECTION_HEADING_RE.match(line):
            break
        match = BULLET_RE.match(line)
        if match:
            name = match.group(1).strip().replace("(", "").replace(")", "")
            if name:
                items.append(name)
    return items if found else None


def parse_dependencies(lines: list[str]) -> list[str]:
    """Return dependency ids in declaration order.

    The inline '- **Dependencies:** [a, b]' form wins; a '## Dependencies'
    bullet section is used only when no inline line exists.
    """
    for line in lines:
        if not line.startswith(DEPENDENCIES_PREFIX):
            continue
        content = line[len(DEPENDENCIES_PREFIX):].strip()
        if content.lower() in _EMPTY_DEPENDENCIES:
            return []
        if not content.startswith("[") or "]" not in content:
            return []
        inner = content[1:content.rindex("]")]
        deps = []
        for part in inner.split(","):
            dep = part.strip().strip('"')
            if dep:
                deps.append(dep)
        return deps

    return _section_bullets(lines, DEPENDENCIES_HEADING_RE) or []


def parse_decomposition(lines: list[str]) -> tuple[bool, list[str]]:
    """Return (is_decomposed_parent, child names) from a '## Decomposed Into' section."""
    children = _section_bullets(lines, DECOMPOSED_HEADING_RE)
    if children is None:
        return False, []
    return True, children


def parse_postconditions(plan_text: str | None) -> list[str]:
    """Return names marked '- [issue] <name>' in a version PLAN.md."""
    if not plan_text:
        return []
    names = []
    for line in plan_text.splitlines():
        match = POSTCONDITION_RE.match(line.strip())
        if match:
            names.append(match.group(1).strip())
    return names


def replace_status(text: str, status: IssueStatus) -> str:
    """Rewrite the status line of a STATE.md document, preserving everything else.

    Raises:
        StatusError: if the document has no status line
    """
    lines = text.splitlines()
    for i, line in enumerate(lines):
        if STATUS_LINE_RE.match(line):
            lines[i] = f"{STATUS_PREFIX} {status.value}"
            trailing = "\n" if text.endswith("\n") else ""
            return "\n".join(lines) + trailing
    raise StatusError(f"Status field missing. STATE.md must contain a '{STATUS_PREFIX}' line.")
