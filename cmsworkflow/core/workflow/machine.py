"""Workflow state machine implementation.

Handles status transitions with validation, capability checks, change logging
and notification events.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from .changes import ChangeLog
from .collaborators import PageProvider
from .events import NotificationEvent, NotificationKind, STATUS_NOTIFICATIONS
from .states import (
    WorkflowStatus,
    WorkflowAction,
    Capability,
    RESUBMIT_ACTIONS,
    TERMINAL_STATUSES,
    OPEN_STATUSES,
    get_transition_rule,
)

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for workflow errors raised outside of transitions."""


class PermissionDeniedError(WorkflowError):
    """Raised when an actor lacks the capability to create a request."""

    def __init__(self, capability: Capability, actor_id: Optional[UUID] = None):
        super().__init__(f"Permission denied: requires {capability.value} capability")
        self.capability = capability
        self.actor_id = actor_id


class OpenRequestExistsError(WorkflowError):
    """Raised when a page already has an open workflow request."""

    def __init__(self, page_id: UUID, request_id: Optional[UUID] = None):
        super().__init__(f"Page {page_id} already has an open workflow request")
        self.page_id = page_id
        self.request_id = request_id


class RequestNotFoundError(WorkflowError):
    """Raised when a workflow request does not exist."""

    def __init__(self, request_id: UUID):
        super().__init__(f"Workflow request {request_id} not found")
        self.request_id = request_id


class WorkflowPersistenceError(WorkflowError):
    """Raised when a new request could not be stored."""


class FailureReason(str, Enum):
    """Why a transition was refused."""

    PERMISSION_DENIED = "permission_denied"
    INVALID_TRANSITION = "invalid_transition"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass
class TransitionResult:
    """
    Outcome of a workflow operation.

    Truthy when the operation succeeded. Failed operations leave the request
    untouched; ``reason`` and ``message`` explain why.
    """
    ok: bool
    action: WorkflowAction
    status: Optional[WorkflowStatus]
    change: Any = None
    event: Optional[NotificationEvent] = None
    reason: Optional[FailureReason] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def failure(
        cls,
        action: WorkflowAction,
        status: Optional[WorkflowStatus],
        reason: FailureReason,
        message: str,
    ) -> "TransitionResult":
        return cls(ok=False, action=action, status=status, reason=reason, message=message)


ACTION_LABELS = {
    "approve": "Approve",
    "request_edit": "Request edit",
    "request_publication": "Re-submit",
    "request_deletion": "Re-submit",
    "comment": "Comment",
    "deny": "Deny/cancel",
}


class WorkflowStateMachine:
    """
    State machine for a single workflow request.

    Wraps a :class:`WorkflowRequest` and its target page and provides:
    - Validation of transitions against the transition table
    - Capability checks against the page
    - Change logging, one entry per operation
    - Notification events, dispatched immediately when a dispatcher is given
    - Callback hooks for side effects

    Persistence is the caller's concern; see
    :class:`cmsworkflow.core.workflow.service.WorkflowService`.
    """

    def __init__(self, request, page: Optional[PageProvider] = None, *, dispatcher=None):
        """
        Initialize the state machine.

        Args:
            request: WorkflowRequest to operate on
            page: Target page, defaults to ``request.page``
            dispatcher: Optional NotificationDispatcher for immediate delivery
        """
        self.workflow_request = request
        self.page = page if page is not None else request.page
        self.dispatcher = dispatcher
        self.changes = ChangeLog(request)
        self._callbacks: Dict[WorkflowAction, List[Callable[[TransitionResult], None]]] = {}

    @property
    def status(self) -> Optional[WorkflowStatus]:
        """Current status, None before the request was submitted."""
        return self.workflow_request.workflow_status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def request(self, comment: str, actor, notify: bool = True) -> TransitionResult:
        """Submit (or re-submit after an edit request) for approval."""
        return self.transition(WorkflowAction.REQUEST, comment, actor, notify=notify)

    def approve(self, comment: str, actor, notify: bool = True) -> TransitionResult:
        """Approve the request and close it."""
        return self.transition(WorkflowAction.APPROVE, comment, actor, notify=notify)

    def deny(self, comment: str, actor, notify: bool = True) -> TransitionResult:
        """Deny the request, revert the page to live and close the request."""
        return self.transition(WorkflowAction.DENY, comment, actor, notify=notify)

    def request_edit(self, comment: str, actor, notify: bool = True) -> TransitionResult:
        """Send the request back to its author for editing."""
        return self.transition(WorkflowAction.REQUEST_EDIT, comment, actor, notify=notify)

    def comment(self, comment: str, actor, notify: bool = True) -> TransitionResult:
        """Comment without changing the status."""
        return self.transition(WorkflowAction.COMMENT, comment, actor, notify=notify)

    def can_perform(self, action: WorkflowAction, actor) -> bool:
        """Check if ``actor`` may perform ``action`` from the current status."""
        rule = get_transition_rule(self.status, action)
        if not rule:
            return False
        return self._has_capability(rule.capability, actor)

    def available_actions(self, actor) -> Dict[str, str]:
        """
        CMS actions offered to ``actor``, mapped to button labels.

        Re-submission is named after the request kind so the CMS routes it to
        the matching publication or deletion action.
        """
        names = []
        if self.status == WorkflowStatus.AWAITING_APPROVAL:
            if self.can_perform(WorkflowAction.APPROVE, actor):
                names.append("approve")
            if self.can_perform(WorkflowAction.REQUEST_EDIT, actor):
                names.append("request_edit")
        elif self.status == WorkflowStatus.AWAITING_EDIT:
            if self.can_perform(WorkflowAction.REQUEST, actor):
                names.append(RESUBMIT_ACTIONS[self.workflow_request.request_kind])

        if self.can_perform(WorkflowAction.COMMENT, actor):
            names.append("comment")
        if self.can_perform(WorkflowAction.DENY, actor):
            names.append("deny")

        return {name: ACTION_LABELS[name] for name in names}

    def transition(
        self,
        action: WorkflowAction,
        comment: str,
        actor,
        *,
        notify: bool = True,
    ) -> TransitionResult:
        """
        Perform a workflow operation.

        Args:
            action: The operation to perform
            comment: Comment recorded in the change log
            actor: Member performing the operation
            notify: Whether to notify interested parties

        Returns:
            TransitionResult; failures leave status and change log unchanged
        """
        from_status = self.status

        rule = get_transition_rule(from_status, action)
        if not rule:
            return self._refuse(
                action,
                FailureReason.INVALID_TRANSITION,
                f"Cannot {action.value} a request in status {from_status.value if from_status else 'new'}",
            )

        if not self._has_capability(rule.capability, actor):
            return self._refuse(
                action,
                FailureReason.PERMISSION_DENIED,
                f"{action.value} requires {rule.capability.value} capability on the page",
            )

        to_status = rule.to_status

        # the page is reverted before the request is touched
        if action == WorkflowAction.DENY:
            # might undo independent draft changes by other authors
            self.page.revert_to_live()

        previous = (
            self.workflow_request.status,
            self.workflow_request.updated_at,
            self.workflow_request.publisher_id,
        )
        try:
            # "publisher" records whoever reviewed last, including deny and request_edit
            if action in (WorkflowAction.APPROVE, WorkflowAction.DENY, WorkflowAction.REQUEST_EDIT):
                self.workflow_request.publisher_id = actor.id

            if to_status is not None:
                self.workflow_request.status = to_status.value
                self.workflow_request.updated_at = datetime.utcnow()

            change = self.changes.append(actor, comment, to_status, self.page)
        except Exception:
            (
                self.workflow_request.status,
                self.workflow_request.updated_at,
                self.workflow_request.publisher_id,
            ) = previous
            logger.exception(f"Workflow request {self.workflow_request.id}: {action.value} failed, status kept")
            raise

        event = None
        if notify:
            kind = STATUS_NOTIFICATIONS[to_status] if to_status else NotificationKind.COMMENT
            event = self._build_event(kind, actor, comment, change.created_at)

        result = TransitionResult(
            ok=True,
            action=action,
            status=self.status,
            change=change,
            event=event,
        )
        logger.info(
            f"Workflow request {self.workflow_request.id}: {action.value} by {actor.id} "
            f"({from_status.value if from_status else 'new'} -> {self.status.value})"
        )

        self._execute_callbacks(action, result)
        if event is not None and self.dispatcher is not None:
            self._dispatch(event)

        return result

    def register_callback(
        self,
        action: WorkflowAction,
        callback: Callable[[TransitionResult], None],
    ) -> None:
        """
        Register a callback to be executed after a successful operation.

        Args:
            action: The operation to hook
            callback: Function to call with the TransitionResult
        """
        self._callbacks.setdefault(action, []).append(callback)

    def get_history(self) -> List:
        """The request's change log, oldest first."""
        return self.changes.entries()

    def _has_capability(self, capability: Capability, actor) -> bool:
        if actor is None:
            return False
        if capability == Capability.EDIT:
            return self.page.can_edit(actor)
        if capability == Capability.PUBLISH:
            return self.page.can_publish(actor)
        return self.page.can_edit(actor) or self.page.can_publish(actor)

    def _refuse(self, action: WorkflowAction, reason: FailureReason, message: str) -> TransitionResult:
        logger.info(f"Workflow request {self.workflow_request.id}: {message}")
        return TransitionResult.failure(action, self.status, reason, message)

    def _build_event(self, kind: NotificationKind, actor, comment: str, created_at) -> NotificationEvent:
        return NotificationEvent(
            kind=kind,
            request_id=self.workflow_request.id,
            request_kind=self.workflow_request.request_kind,
            page_id=self.page.id,
            page_title=self.page.title,
            actor_id=actor.id,
            author_id=self.workflow_request.author_id,
            publisher_ids=self.workflow_request.assigned_publisher_ids,
            comment=comment or "",
            created_at=created_at,
        )

    def _dispatch(self, event: NotificationEvent) -> None:
        try:
            self.dispatcher.dispatch(event)
        except Exception:
            # the transition stands even if nobody hears about it
            logger.exception(f"Notification dispatch failed for workflow request {self.workflow_request.id}")

    def _execute_callbacks(self, action: WorkflowAction, result: TransitionResult) -> None:
        for callback in self._callbacks.get(action, []):
            try:
                callback(result)
            except Exception:
                logger.exception(f"Callback error for {action.value} on workflow request {self.workflow_request.id}")
