"""Workflow statuses, actions and the transition table.

State Machine Diagram:

    (new request)
         │ request
    ┌────▼─────────────┐  request_edit  ┌──────────────┐
    │ AwaitingApproval │───────────────►│ AwaitingEdit │
    │                  │◄───────────────│              │
    └──┬───────────┬───┘    request     └──────┬───────┘
       │ approve   │ deny                      │ deny
  ┌────▼─────┐ ┌───▼────┐                      │
  │ Approved │ │ Denied │◄─────────────────────┘
  └──────────┘ └────────┘

``comment`` is allowed from every status and never changes it.
Approved and Denied are terminal: the request is kept as an audit record.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class WorkflowStatus(str, Enum):
    """Statuses of a workflow request."""

    AWAITING_APPROVAL = "AwaitingApproval"
    APPROVED = "Approved"
    DENIED = "Denied"
    AWAITING_EDIT = "AwaitingEdit"


class WorkflowAction(str, Enum):
    """Operations callers invoke on a workflow request."""

    REQUEST = "request"
    APPROVE = "approve"
    DENY = "deny"
    REQUEST_EDIT = "request_edit"
    COMMENT = "comment"


class RequestKind(str, Enum):
    """What the requested change does to the page once approved."""

    PUBLICATION = "publication"
    DELETION = "deletion"


class Capability(str, Enum):
    """Page capability an actor needs for an action."""

    EDIT = "edit"
    PUBLISH = "publish"
    EDIT_OR_PUBLISH = "edit_or_publish"


class TransitionRule(NamedTuple):
    """Defines a valid transition. ``to_status`` None keeps the current status."""
    from_status: Optional[WorkflowStatus]
    to_status: Optional[WorkflowStatus]
    action: WorkflowAction
    capability: Capability


TRANSITION_RULES: list[TransitionRule] = [
    # Submission and re-submission
    TransitionRule(None, WorkflowStatus.AWAITING_APPROVAL, WorkflowAction.REQUEST, Capability.EDIT),
    TransitionRule(WorkflowStatus.AWAITING_EDIT, WorkflowStatus.AWAITING_APPROVAL,
                   WorkflowAction.REQUEST, Capability.EDIT),

    # Review
    TransitionRule(WorkflowStatus.AWAITING_APPROVAL, WorkflowStatus.APPROVED,
                   WorkflowAction.APPROVE, Capability.PUBLISH),
    TransitionRule(WorkflowStatus.AWAITING_APPROVAL, WorkflowStatus.AWAITING_EDIT,
                   WorkflowAction.REQUEST_EDIT, Capability.PUBLISH),
    TransitionRule(WorkflowStatus.AWAITING_APPROVAL, WorkflowStatus.DENIED,
                   WorkflowAction.DENY, Capability.PUBLISH),
    TransitionRule(WorkflowStatus.AWAITING_EDIT, WorkflowStatus.DENIED,
                   WorkflowAction.DENY, Capability.PUBLISH),
]

# Comments are valid on every requested status
TRANSITION_RULES += [
    TransitionRule(status, None, WorkflowAction.COMMENT, Capability.EDIT_OR_PUBLISH)
    for status in WorkflowStatus
]

VALID_ACTIONS: Dict[Optional[WorkflowStatus], Set[WorkflowAction]] = {}
TRANSITION_TARGETS: Dict[tuple[Optional[WorkflowStatus], WorkflowAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_ACTIONS.setdefault(rule.from_status, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_status, rule.action)] = rule


# Statuses of requests still under review; at most one per page
OPEN_STATUSES: Set[WorkflowStatus] = {
    WorkflowStatus.AWAITING_APPROVAL,
    WorkflowStatus.AWAITING_EDIT,
}

# Closed requests are never reopened
TERMINAL_STATUSES: Set[WorkflowStatus] = {
    WorkflowStatus.APPROVED,
    WorkflowStatus.DENIED,
}

STATUS_DESCRIPTIONS: Dict[WorkflowStatus, str] = {
    WorkflowStatus.AWAITING_APPROVAL: "Awaiting Approval",
    WorkflowStatus.APPROVED: "Approved",
    WorkflowStatus.DENIED: "Denied",
    WorkflowStatus.AWAITING_EDIT: "Awaiting Edit",
}

# CMS action used to re-submit a request sent back for editing
RESUBMIT_ACTIONS: Dict[RequestKind, str] = {
    RequestKind.PUBLICATION: "request_publication",
    RequestKind.DELETION: "request_deletion",
}


def can_transition(from_status: Optional[WorkflowStatus], action: WorkflowAction) -> bool:
    """Check if an action is valid from the given status."""
    return action in VALID_ACTIONS.get(from_status, set())


def get_transition_rule(
    from_status: Optional[WorkflowStatus], action: WorkflowAction
) -> Optional[TransitionRule]:
    """Get the transition rule for a status/action combination."""
    return TRANSITION_TARGETS.get((from_status, action))


def get_target_status(
    from_status: Optional[WorkflowStatus], action: WorkflowAction
) -> Optional[WorkflowStatus]:
    """Get the status an action leads to, or None if it is invalid."""
    rule = get_transition_rule(from_status, action)
    if not rule:
        return None
    return rule.to_status or from_status


def is_open(status: Optional[WorkflowStatus]) -> bool:
    return status in OPEN_STATUSES


def status_description(status) -> str:
    """Human-readable label for a status value."""
    try:
        return STATUS_DESCRIPTIONS[WorkflowStatus(status)]
    except ValueError:
        return "Unknown"
