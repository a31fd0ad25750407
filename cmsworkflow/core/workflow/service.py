"""Workflow service for managing page workflow requests.

Provides the transactional API around the workflow state machine:
request creation under the one-open-request-per-page rule, transitions that
commit the status and its change log entry together, and notification
dispatch after the commit.
"""

import logging
import uuid
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cmsworkflow.core.config import get_settings
from .events import NotificationEvent
from .machine import (
    WorkflowStateMachine,
    TransitionResult,
    FailureReason,
    PermissionDeniedError,
    OpenRequestExistsError,
    RequestNotFoundError,
    WorkflowPersistenceError,
)
from .schemas import WorkflowRequestRead
from .states import (
    WorkflowAction,
    RequestKind,
    Capability,
    OPEN_STATUSES,
)

logger = logging.getLogger(__name__)

OPEN_REQUEST_INDEX = "uq_workflow_requests_open_page"

# SQLite names the indexed column instead of the index
SQLITE_OPEN_REQUEST_CONFLICT = "UNIQUE constraint failed: workflow_requests.page_id"


def _is_open_request_conflict(error: IntegrityError) -> bool:
    """Whether ``error`` comes from the one-open-request-per-page index."""
    message = str(error.orig)
    return OPEN_REQUEST_INDEX in message or SQLITE_OPEN_REQUEST_CONFLICT in message


class WorkflowService:
    """
    High-level service for page workflow requests.

    Handles:
    - Creating requests, at most one open request per page
    - Performing transitions with persistence and rollback
    - Dispatching notifications outside the transaction

    The service owns transaction boundaries: every public mutator either
    commits or rolls back the session.
    """

    def __init__(self, db: Session, *, dispatcher=None, settings=None):
        """
        Initialize the workflow service.

        Args:
            db: Database session
            dispatcher: NotificationDispatcher used in inline mode; defaults to
                SMTP delivery configured from settings
            settings: Application settings
        """
        self.db = db
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher

    def can_create(self, member, page) -> bool:
        """Authors need edit capability on the page to open a request."""
        return page.can_edit(member)

    def get_request(self, request_id: UUID):
        """Get a workflow request by ID."""
        from cmsworkflow.db.models.workflow import WorkflowRequest

        return self.db.get(WorkflowRequest, request_id)

    def open_request(self, page_id: UUID):
        """The open request for a page, if any."""
        from cmsworkflow.db.models.workflow import WorkflowRequest

        return self.db.query(WorkflowRequest).filter(
            WorkflowRequest.page_id == page_id,
            WorkflowRequest.status.in_([s.value for s in OPEN_STATUSES]),
        ).first()

    def create_request(
        self,
        page,
        author,
        comment: str,
        *,
        kind: RequestKind = RequestKind.PUBLICATION,
        publishers: Optional[Iterable] = None,
        notify: bool = True,
    ):
        """
        Open a new workflow request for a page and submit it for approval.

        Args:
            page: Target page
            author: Member opening the request
            comment: Comment for the initial change log entry
            kind: Publication or deletion request
            publishers: Assigned publishers, defaults to the page's publishers
            notify: Whether to notify the assigned publishers

        Returns:
            The new WorkflowRequest, status AwaitingApproval

        Raises:
            PermissionDeniedError: If the author cannot edit the page
            OpenRequestExistsError: If the page already has an open request
            WorkflowPersistenceError: If the request could not be stored
        """
        from cmsworkflow.db.models.page import Page
        from cmsworkflow.db.models.workflow import WorkflowRequest

        if not self.can_create(author, page):
            raise PermissionDeniedError(Capability.EDIT, author.id)

        # Serialize creators on the page row; the partial unique index backs this up
        self.db.query(Page).filter(Page.id == page.id).with_for_update().first()

        existing = self.open_request(page.id)
        if existing is not None:
            self.db.rollback()
            raise OpenRequestExistsError(page.id, existing.id)

        request = WorkflowRequest(
            id=uuid.uuid4(),
            kind=RequestKind(kind).value,
            page=page,
            page_id=page.id,
            author=author,
            author_id=author.id,
            publishers=list(publishers if publishers is not None else page.publisher_members()),
        )
        self.db.add(request)

        try:
            result = WorkflowStateMachine(request, page).request(comment, author, notify=notify)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Failed to submit workflow request for page {page.id}")
            raise WorkflowPersistenceError(str(e)) from e
        if not result:
            self.db.rollback()
            raise PermissionDeniedError(Capability.EDIT, author.id)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not _is_open_request_conflict(e):
                logger.exception(f"Failed to store workflow request for page {page.id}")
                raise WorkflowPersistenceError(str(e)) from e
            logger.warning(f"Concurrent request detected for page {page.id}: {e}")
            raise OpenRequestExistsError(page.id) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Failed to store workflow request for page {page.id}")
            raise WorkflowPersistenceError(str(e)) from e

        logger.info(f"Opened {request.kind} request {request.id} for page {page.id}")
        self._dispatch(result.event)
        return request

    def open_or_new_request(
        self,
        page,
        author,
        comment: str,
        *,
        kind: RequestKind = RequestKind.PUBLICATION,
        publishers: Optional[Iterable] = None,
        notify: bool = True,
    ):
        """
        Return the page's open request, or create one.

        Raises:
            OpenRequestExistsError: If the open request is of another kind
        """
        existing = self.open_request(page.id)
        if existing is not None:
            if existing.request_kind != RequestKind(kind):
                raise OpenRequestExistsError(page.id, existing.id)
            return existing
        return self.create_request(
            page, author, comment, kind=kind, publishers=publishers, notify=notify,
        )

    def request(self, request_id: UUID, comment: str, actor, *, notify: bool = True) -> TransitionResult:
        """Re-submit a request sent back for editing."""
        return self.transition(request_id, WorkflowAction.REQUEST, comment, actor, notify=notify)

    def approve(self, request_id: UUID, comment: str, actor, *, notify: bool = True) -> TransitionResult:
        return self.transition(request_id, WorkflowAction.APPROVE, comment, actor, notify=notify)

    def deny(self, request_id: UUID, comment: str, actor, *, notify: bool = True) -> TransitionResult:
        return self.transition(request_id, WorkflowAction.DENY, comment, actor, notify=notify)

    def request_edit(self, request_id: UUID, comment: str, actor, *, notify: bool = True) -> TransitionResult:
        return self.transition(request_id, WorkflowAction.REQUEST_EDIT, comment, actor, notify=notify)

    def comment(self, request_id: UUID, comment: str, actor, *, notify: bool = True) -> TransitionResult:
        return self.transition(request_id, WorkflowAction.COMMENT, comment, actor, notify=notify)

    def transition(
        self,
        request_id: UUID,
        action: WorkflowAction,
        comment: str,
        actor,
        *,
        notify: bool = True,
    ) -> TransitionResult:
        """
        Perform an operation on a stored workflow request.

        The status change, the change log entry and any page revert are
        committed together. Notifications go out only after the commit.

        Raises:
            RequestNotFoundError: If the request does not exist
        """
        from cmsworkflow.db.models.workflow import WorkflowRequest

        request = self.db.query(WorkflowRequest).filter(
            WorkflowRequest.id == request_id,
        ).with_for_update().first()

        if not request:
            self.db.rollback()
            raise RequestNotFoundError(request_id)

        previous_status = request.workflow_status
        try:
            result = WorkflowStateMachine(request).transition(action, comment, actor, notify=notify)
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Failed to apply {action.value} on workflow request {request_id}")
            return TransitionResult.failure(
                action, previous_status, FailureReason.PERSISTENCE_FAILURE, str(e),
            )
        if not result:
            # releases the row lock
            self.db.rollback()
            return result

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Failed to persist {action.value} on workflow request {request_id}")
            return TransitionResult.failure(
                action, previous_status, FailureReason.PERSISTENCE_FAILURE, str(e),
            )

        self._dispatch(result.event)
        return result

    def describe(self, request_id: UUID) -> WorkflowRequestRead:
        """Serializable view of a request and its change log."""
        request = self.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return WorkflowRequestRead.model_validate(request)

    def _dispatch(self, event: Optional[NotificationEvent]) -> None:
        """Hand an event to the notification channel; never raises."""
        if event is None:
            return

        if self.settings.notification_mode == "celery":
            from cmsworkflow.workers.notification_tasks import dispatch_notification

            try:
                dispatch_notification.delay(event.model_dump(mode="json"))
            except Exception:
                logger.exception(f"Failed to queue notification for workflow request {event.request_id}")
            return

        try:
            self._get_dispatcher().dispatch(event)
        except Exception:
            logger.exception(f"Notification dispatch failed for workflow request {event.request_id}")

    def _get_dispatcher(self):
        if self.dispatcher is None:
            from cmsworkflow.services.notifications import NotificationDispatcher, SmtpMailSender
            from .collaborators import MemberDirectory

            self.dispatcher = NotificationDispatcher(
                MemberDirectory(self.db),
                SmtpMailSender(self.settings),
                settings=self.settings,
                db=self.db,
            )
        return self.dispatcher
