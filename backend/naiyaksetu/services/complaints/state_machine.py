"""
Complaint Lifecycle State Machine

Single source of truth for complaint statuses, their display labels and
the transitions between them. Every mutation path asks this module whether
a transition is allowed; nothing else maps statuses to labels.

No transition ever returns a complaint to SUBMITTED. Same-status
transitions are allowed and still recorded in history, so staff can add a
note without changing state.
"""
from typing import Any, Dict, Optional, Set, Tuple, Union

from ...errors import InvalidTransition, ValidationError
from ...models.db_models import ComplaintStatus


# =============================================================================
# STATE CONFIGURATION
# =============================================================================

STATUS_CONFIG: Dict[ComplaintStatus, Dict[str, Any]] = {
    ComplaintStatus.SUBMITTED: {
        "label": "Submitted",
        "description": "Complaint received, awaiting action",
        "allowed_transitions": [
            ComplaintStatus.SUBMITTED,
            ComplaintStatus.IN_PROGRESS,
            ComplaintStatus.RESOLVED,  # Trivial issues may be fixed outright
            ComplaintStatus.CLOSED,
        ],
    },
    ComplaintStatus.IN_PROGRESS: {
        "label": "In Progress",
        "description": "Assigned department is working on it",
        "allowed_transitions": [
            ComplaintStatus.IN_PROGRESS,
            ComplaintStatus.RESOLVED,
            ComplaintStatus.CLOSED,
        ],
    },
    ComplaintStatus.RESOLVED: {
        "label": "Resolved",
        "description": "Department reports the issue fixed",
        "allowed_transitions": [
            ComplaintStatus.RESOLVED,
            ComplaintStatus.IN_PROGRESS,  # Reopen
            ComplaintStatus.CLOSED,
        ],
    },
    ComplaintStatus.CLOSED: {
        "label": "Closed",
        "description": "No further action expected",
        "allowed_transitions": [
            ComplaintStatus.CLOSED,
            ComplaintStatus.IN_PROGRESS,  # Reopen, recorded in history
        ],
    },
}


def parse_status(value: Union[str, ComplaintStatus, None]) -> ComplaintStatus:
    """Closed-enum parse. Unknown strings are a ValidationError."""
    if isinstance(value, ComplaintStatus):
        return value
    try:
        return ComplaintStatus((value or "").strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in ComplaintStatus)
        raise ValidationError(f"Invalid status. Must be one of: {valid}")


def allowed_transitions(from_status: ComplaintStatus) -> Set[ComplaintStatus]:
    return set(STATUS_CONFIG[from_status]["allowed_transitions"])


def status_label(status: Union[str, ComplaintStatus]) -> str:
    return STATUS_CONFIG[parse_status(status)]["label"]


# =============================================================================
# STATE MACHINE
# =============================================================================

class ComplaintStateMachine:
    """Transition checks for a single complaint's current status."""

    def __init__(self, current: ComplaintStatus):
        self.current = parse_status(current)

    def can_transition(self, target: ComplaintStatus) -> Tuple[bool, Optional[str]]:
        """
        Check whether moving to ``target`` is allowed.

        Returns (allowed, reason). reason is None when allowed.
        """
        target = parse_status(target)
        if target in allowed_transitions(self.current):
            return True, None
        allowed = sorted(s.value for s in allowed_transitions(self.current))
        return False, (
            f"Cannot change status from {self.current.value} to {target.value}. "
            f"Allowed: {', '.join(allowed)}"
        )

    def assert_transition(self, target: ComplaintStatus) -> ComplaintStatus:
        target = parse_status(target)
        ok, reason = self.can_transition(target)
        if not ok:
            raise InvalidTransition(reason)
        return target

    @staticmethod
    def default_note(target: ComplaintStatus) -> str:
        return f"Status changed to {status_label(target)}"
