"""Issue status state machine using transitions library.

STATE.md carries a single `- **Status:**` line; this machine decides which
changes to it are legal and rewrites only that line.

Usage:
    from issuectl.workflow.fsm import IssueFSM

    fsm = IssueFSM(repo, IssueId.parse("2.1-fix-bug"))
    fsm.start()   # open -> in-progress
    fsm.close()   # in-progress -> closed (guarded for decomposed parents)
"""

import logging
from typing import TYPE_CHECKING

from transitions import Machine

from issuectl.issues.models import IssueId, IssueStatus, WorkItem
from issuectl.issues.statefile import parse_decomposition, parse_status, replace_status
from issuectl.lib.errors import InvalidTransition, StatusError

if TYPE_CHECKING:
    from issuectl.issues.repository import WorkItemRepository

logger = logging.getLogger(__name__)


# Machine states are IssueStatus names in lowercase (identifier-safe)
STATES = [status.name.lower() for status in IssueStatus]

TRANSITIONS = [
    {"trigger": "start", "source": "open", "dest": "in_progress"},
    {"trigger": "pause", "source": "in_progress", "dest": "open"},

    # Decomposed parents close only after their sub-issues
    {"trigger": "close", "source": ["open", "in_progress"], "dest": "closed",
     "conditions": "children_closed"},
    {"trigger": "reopen", "source": "closed", "dest": "open"},

    {"trigger": "block", "source": ["open", "in_progress"], "dest": "blocked"},
    {"trigger": "unblock", "source": "blocked", "dest": "open"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        sources = t["source"] if isinstance(t["source"], list) else [t["source"]]
        for source in sources:
            lookup.setdefault((source, t["dest"]), t["trigger"])
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


def state_of(status: IssueStatus) -> str:
    return status.name.lower()


def status_of(state: str) -> IssueStatus:
    return IssueStatus[state.upper()]


class IssueFSM:
    """State machine for one work item's status.

    Loads the current status from STATE.md and writes the new one back
    after every transition.
    """

    def __init__(self, repo: "WorkItemRepository", issue_id: IssueId):
        self.repo = repo
        self.issue_id = issue_id
        self.source = repo.item_path(issue_id)

        # Read the raw document rather than load_item(): an inconsistent
        # closed parent must still be reopenable.
        self._text = repo.read_state_text(issue_id)
        lines = self._text.splitlines()
        self.decomposed, self.children = parse_decomposition(lines)
        initial = parse_status(lines, self.source)

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=state_of(initial),
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    @property
    def status(self) -> IssueStatus:
        return status_of(self.state)

    def children_closed(self, event) -> bool:
        if not self.decomposed:
            return True
        item = WorkItem(self.issue_id, self.status, self.source,
                        decomposed=True, children=self.children)
        return self.repo.children_closed(item)

    def on_state_change(self, event) -> None:
        """Persist the new status and log the transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self._text = replace_status(self._text, self.status)
        self.repo.write_state_text(self.issue_id, self._text)
        logger.info(f"[FSM] {self.issue_id}: {from_state} -> {to_state} ({trigger})")

    def can(self, trigger: str) -> bool:
        return trigger in self.machine.get_triggers(self.state)

    def transition_to(self, target: IssueStatus) -> bool:
        """Move to target status. Returns False if already there.

        Raises:
            InvalidTransition: no trigger leads from the current status to target
            StatusError: closing a decomposed parent with open sub-issues
        """
        current = self.status
        if current == target:
            return False

        trigger = TRIGGER_FOR.get((state_of(current), state_of(target)))
        if trigger is None or not self.can(trigger):
            raise InvalidTransition(str(self.issue_id), str(current), str(target))

        if not self.trigger(trigger):
            raise StatusError(
                f"Cannot close decomposed parent issue {self.issue_id}: "
                f"sub-issues are not all closed",
                path=self.source,
            )
        return True
