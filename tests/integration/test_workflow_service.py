"""Integration tests for the workflow service.

Tests end-to-end flows against an in-memory SQLite database:
1. Request creation under the one-open-request-per-page rule
2. Approval, denial and edit cycles with their change log
3. Rollback on persistence failures
4. Inline and Celery notification dispatch after commit
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cmsworkflow.core.workflow import (
    WorkflowService, WorkflowStatus, RequestKind, FailureReason,
    OpenRequestExistsError, PermissionDeniedError, RequestNotFoundError,
    WorkflowPersistenceError,
)
from cmsworkflow.core.workflow.collaborators import MemberDirectory
from cmsworkflow.db.models import NotificationLog, Page, WorkflowRequest, WorkflowRequestChange
from cmsworkflow.services.notifications import NotificationDispatcher

from tests.factories import create_member, create_page


pytestmark = pytest.mark.integration


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def author(db_session):
    return create_member(db_session, first_name="Alice")


@pytest.fixture()
def publisher_b(db_session):
    return create_member(db_session, first_name="Bea")


@pytest.fixture()
def publisher_c(db_session):
    return create_member(db_session, first_name="Carl")


@pytest.fixture()
def editor_d(db_session):
    return create_member(db_session, first_name="Dan")


@pytest.fixture()
def page(db_session, author, publisher_b, publisher_c, editor_d):
    page = create_page(
        db_session,
        title="About us",
        draft_version=3,
        live_version=2,
        editors=[author, editor_d],
        publishers=[publisher_b, publisher_c],
    )
    db_session.commit()
    return page


@pytest.fixture()
def service(db_session, mail_sender, settings):
    dispatcher = NotificationDispatcher(
        MemberDirectory(db_session), mail_sender, settings=settings, db=db_session,
    )
    return WorkflowService(db_session, dispatcher=dispatcher, settings=settings)


@pytest.fixture()
def open_request(service, page, author, mail_sender):
    """A publication request awaiting approval, with the outbox emptied."""
    request = service.create_request(page, author, "please review")
    mail_sender.sent.clear()
    return request


def reload(db_session, request_id):
    db_session.expire_all()
    return db_session.get(WorkflowRequest, request_id)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreateRequest:
    """Test opening requests."""

    def test_create_request(self, db_session, service, page, author, publisher_b, publisher_c, mail_sender):
        request = service.create_request(page, author, "please review")

        stored = reload(db_session, request.id)
        assert stored.status == WorkflowStatus.AWAITING_APPROVAL.value
        assert stored.kind == "publication"
        assert stored.author_id == author.id
        assert sorted(stored.assigned_publisher_ids) == sorted([publisher_b.id, publisher_c.id])
        assert len(stored.changes) == 1
        assert stored.changes[0].comment == "please review"
        assert sorted(mail_sender.recipients) == sorted([publisher_b.email, publisher_c.email])

    def test_notifications_recorded(self, db_session, service, page, author):
        request = service.create_request(page, author, "please review")

        logs = db_session.query(NotificationLog).filter(NotificationLog.request_id == request.id).all()
        assert len(logs) == 2
        assert {log.event for log in logs} == {"awaiting_approval"}
        assert {log.status for log in logs} == {"sent"}

    def test_explicit_publishers(self, db_session, service, page, author, publisher_c, mail_sender):
        request = service.create_request(page, author, "just Carl", publishers=[publisher_c])

        assert reload(db_session, request.id).assigned_publisher_ids == [publisher_c.id]
        assert mail_sender.recipients == [publisher_c.email]

    def test_deletion_request(self, db_session, service, page, author, mail_sender):
        request = service.create_request(page, author, "remove it", kind=RequestKind.DELETION)

        assert reload(db_session, request.id).request_kind == RequestKind.DELETION
        assert mail_sender.sent[0]["subject"] == 'Deletion of "About us" is awaiting your approval'

    def test_one_open_request_per_page(self, db_session, service, page, author, open_request):
        with pytest.raises(OpenRequestExistsError) as exc_info:
            service.create_request(page, author, "second")

        assert exc_info.value.request_id == open_request.id
        assert db_session.query(WorkflowRequest).count() == 1

    def test_unique_index_backs_up_check(self, db_session, service, page, author, open_request):
        """A creator that missed the open request still cannot store a second one."""
        with patch.object(service, "open_request", return_value=None):
            with pytest.raises(OpenRequestExistsError):
                service.create_request(page, author, "racing")

        assert db_session.query(WorkflowRequest).count() == 1
        assert db_session.query(WorkflowRequestChange).count() == 1

    @pytest.mark.parametrize("driver_message", [
        'duplicate key value violates unique constraint "uq_workflow_requests_open_page"',
        "UNIQUE constraint failed: workflow_requests.page_id",
    ])
    def test_open_request_index_violation(self, db_session, service, page, author, driver_message):
        error = IntegrityError("INSERT INTO workflow_requests", {}, Exception(driver_message))

        with patch.object(db_session, "commit", side_effect=error):
            with pytest.raises(OpenRequestExistsError):
                service.create_request(page, author, "racing")

    def test_other_integrity_error_is_not_a_conflict(self, db_session, service, page, author):
        """Only the open-request index means another request won the race."""
        error = IntegrityError(
            "INSERT INTO workflow_requests", {}, Exception("FOREIGN KEY constraint failed"),
        )

        with patch.object(db_session, "commit", side_effect=error):
            with pytest.raises(WorkflowPersistenceError):
                service.create_request(page, author, "please review")

        assert db_session.query(WorkflowRequest).count() == 0
        assert db_session.query(WorkflowRequestChange).count() == 0

    def test_closed_requests_do_not_block(self, db_session, service, page, author, publisher_b, open_request):
        assert service.approve(open_request.id, "ok", publisher_b)

        second = service.create_request(page, author, "next round")

        assert second.id != open_request.id
        assert service.open_request(page.id).id == second.id

    def test_author_without_edit_capability(self, db_session, service, page):
        outsider = create_member(db_session, first_name="Olga")

        with pytest.raises(PermissionDeniedError):
            service.create_request(page, outsider, "let me in")

        assert db_session.query(WorkflowRequest).count() == 0

    def test_can_create(self, db_session, service, page, author, publisher_b):
        assert service.can_create(author, page)
        assert service.can_create(publisher_b, page)
        assert not service.can_create(create_member(db_session), page)

    def test_open_or_new_request(self, service, page, author, open_request):
        assert service.open_or_new_request(page, author, "again").id == open_request.id

        with pytest.raises(OpenRequestExistsError):
            service.open_or_new_request(page, author, "delete", kind=RequestKind.DELETION)

    def test_open_or_new_request_creates(self, service, page, author):
        request = service.open_or_new_request(page, author, "first")

        assert request.workflow_status == WorkflowStatus.AWAITING_APPROVAL


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class TestTransitions:
    """Test persisted transitions."""

    def test_approve(self, db_session, service, open_request, author, publisher_b, mail_sender):
        result = service.approve(open_request.id, "looks good", publisher_b)

        assert result.ok
        stored = reload(db_session, open_request.id)
        assert stored.status == "Approved"
        assert stored.publisher_id == publisher_b.id
        assert [c.status for c in stored.changes] == ["AwaitingApproval", "Approved"]
        assert mail_sender.recipients == [author.email]

    def test_deny_reverts_page(self, db_session, service, open_request, page, author, publisher_c, mail_sender):
        result = service.deny(open_request.id, "needs spelling fix", publisher_c)

        assert result.ok
        stored = reload(db_session, open_request.id)
        assert stored.status == "Denied"
        assert len(stored.changes) == 2
        assert db_session.get(Page, page.id).draft_version == 2
        assert mail_sender.recipients == [author.email]

    def test_request_edit_and_resubmit(self, db_session, service, open_request, author, publisher_b):
        assert service.request_edit(open_request.id, "fix typo", publisher_b)
        assert service.request(open_request.id, "fixed", author)

        stored = reload(db_session, open_request.id)
        assert stored.status == "AwaitingApproval"
        assert [c.status for c in stored.changes] == [
            "AwaitingApproval", "AwaitingEdit", "AwaitingApproval",
        ]
        assert [c.sequence for c in stored.changes] == [0, 1, 2]

    def test_comment(self, db_session, service, open_request, author, publisher_b, publisher_c, mail_sender):
        result = service.comment(open_request.id, "any news?", author)

        assert result.ok
        stored = reload(db_session, open_request.id)
        assert stored.status == "AwaitingApproval"
        assert stored.changes[-1].status is None
        assert sorted(mail_sender.recipients) == sorted([publisher_b.email, publisher_c.email])

    def test_permission_denied_leaves_request_untouched(self, db_session, service, open_request, editor_d, mail_sender):
        result = service.approve(open_request.id, "sneaky", editor_d)

        assert not result
        assert result.reason == FailureReason.PERMISSION_DENIED
        stored = reload(db_session, open_request.id)
        assert stored.status == "AwaitingApproval"
        assert stored.publisher_id is None
        assert len(stored.changes) == 1
        assert mail_sender.sent == []

    def test_closed_request_stays_closed(self, db_session, service, open_request, author, publisher_b):
        service.deny(open_request.id, "no", publisher_b)

        assert service.approve(open_request.id, "changed my mind", publisher_b).reason == (
            FailureReason.INVALID_TRANSITION
        )
        assert service.request(open_request.id, "please", author).reason == FailureReason.INVALID_TRANSITION
        assert reload(db_session, open_request.id).status == "Denied"

    def test_unknown_request(self, service, publisher_b):
        with pytest.raises(RequestNotFoundError):
            service.approve(uuid.uuid4(), "ok", publisher_b)

    def test_persistence_failure_rolls_back(self, db_session, service, open_request, page, publisher_b, mail_sender):
        """Status, change log and page revert are committed together or not at all."""
        with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk I/O error")):
            result = service.deny(open_request.id, "no", publisher_b)

        assert not result
        assert result.reason == FailureReason.PERSISTENCE_FAILURE
        assert result.status == WorkflowStatus.AWAITING_APPROVAL
        assert "disk I/O error" in result.message

        stored = reload(db_session, open_request.id)
        assert stored.status == "AwaitingApproval"
        assert len(stored.changes) == 1
        assert db_session.get(Page, page.id).draft_version == 3
        assert mail_sender.sent == []

    def test_page_failure_rolls_back(self, db_session, service, open_request, page, publisher_b, mail_sender):
        """A page that cannot be reverted fails the deny without closing the request."""
        with patch.object(Page, "revert_to_live", side_effect=RuntimeError("versioning down")):
            result = service.deny(open_request.id, "no", publisher_b)

        assert not result
        assert result.reason == FailureReason.PERSISTENCE_FAILURE
        assert result.status == WorkflowStatus.AWAITING_APPROVAL
        assert "versioning down" in result.message

        db_session.commit()
        stored = reload(db_session, open_request.id)
        assert stored.status == "AwaitingApproval"
        assert stored.publisher_id is None
        assert len(stored.changes) == 1
        assert db_session.get(Page, page.id).draft_version == 3
        assert mail_sender.sent == []

    def test_notification_failure_keeps_transition(self, db_session, page, author, publisher_b, settings):
        class BrokenDispatcher:
            def dispatch(self, event):
                raise RuntimeError("mail queue down")

        service = WorkflowService(db_session, dispatcher=BrokenDispatcher(), settings=settings)
        request = service.create_request(page, author, "please review")

        assert service.approve(request.id, "ok", publisher_b)
        assert reload(db_session, request.id).status == "Approved"

    def test_celery_mode_queues_event(self, db_session, page, author, publisher_b, mail_sender, settings):
        settings.notification_mode = "celery"
        service = WorkflowService(db_session, settings=settings)

        with patch("cmsworkflow.workers.notification_tasks.dispatch_notification.delay") as delay:
            request = service.create_request(page, author, "please review")

        delay.assert_called_once()
        payload = delay.call_args.args[0]
        assert payload["kind"] == "awaiting_approval"
        assert payload["request_id"] == str(request.id)
        assert payload["page_title"] == "About us"
        assert mail_sender.sent == []

    def test_notify_false(self, service, page, author, mail_sender):
        service.create_request(page, author, "quiet", notify=False)

        assert mail_sender.sent == []


class TestDescribe:
    """Test the serializable request view."""

    def test_describe(self, service, open_request, author, publisher_b):
        service.comment(open_request.id, "looking", publisher_b)

        view = service.describe(open_request.id)

        assert view.id == open_request.id
        assert view.status == "AwaitingApproval"
        assert view.status_description == "Awaiting Approval"
        assert view.author_id == author.id
        assert [c.status_description for c in view.changes] == ["Awaiting Approval", ""]
        assert view.model_dump(mode="json")["changes"][1]["comment"] == "looking"

    def test_describe_unknown(self, service):
        with pytest.raises(RequestNotFoundError):
            service.describe(uuid.uuid4())
