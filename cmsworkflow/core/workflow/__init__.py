"""Page approval workflow.

Implements the workflow request state machine, its change log, and the
persistence and query layers around it.
"""

from .states import (
    WorkflowStatus,
    WorkflowAction,
    RequestKind,
    Capability,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
)
from .events import NotificationEvent, NotificationKind
from .changes import ChangeLog
from .machine import (
    WorkflowStateMachine,
    TransitionResult,
    FailureReason,
    WorkflowError,
    PermissionDeniedError,
    OpenRequestExistsError,
    RequestNotFoundError,
    WorkflowPersistenceError,
)
from .service import WorkflowService
from .query import WorkflowQuery

__all__ = [
    "WorkflowStatus",
    "WorkflowAction",
    "RequestKind",
    "Capability",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "NotificationEvent",
    "NotificationKind",
    "ChangeLog",
    "WorkflowStateMachine",
    "TransitionResult",
    "FailureReason",
    "WorkflowError",
    "PermissionDeniedError",
    "OpenRequestExistsError",
    "RequestNotFoundError",
    "WorkflowPersistenceError",
    "WorkflowService",
    "WorkflowQuery",
]
