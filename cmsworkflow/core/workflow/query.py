"""Read-side queries over stored workflow requests.

Listings return the target pages, most recently edited first, like the CMS
reports built on top of them.
"""

from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from .schemas import PendingReview
from .states import (
    WorkflowStatus,
    RequestKind,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
)


class WorkflowQuery:
    """Find pages and requests by author, assigned publisher, kind and status."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_author(
        self,
        author_id: UUID,
        kinds: Optional[Iterable[RequestKind]] = None,
        statuses: Optional[Iterable[WorkflowStatus]] = None,
    ) -> List:
        """Pages with requests opened by ``author_id``."""
        from cmsworkflow.db.models.workflow import WorkflowRequest

        return self._pages(kinds, statuses, WorkflowRequest.author_id == author_id)

    def get_by_publisher(
        self,
        publisher_id: UUID,
        kinds: Optional[Iterable[RequestKind]] = None,
        statuses: Optional[Iterable[WorkflowStatus]] = None,
    ) -> List:
        """Pages with requests assigned to ``publisher_id`` for review."""
        from cmsworkflow.db.models.member import Member
        from cmsworkflow.db.models.workflow import WorkflowRequest

        return self._pages(
            kinds, statuses, WorkflowRequest.publishers.any(Member.id == publisher_id),
        )

    def get_all(
        self,
        kinds: Optional[Iterable[RequestKind]] = None,
        statuses: Optional[Iterable[WorkflowStatus]] = None,
    ) -> List:
        """Pages with requests from all authors."""
        return self._pages(kinds, statuses)

    def requests_for_page(self, page_id: UUID, *, open_only: Optional[bool] = None) -> List:
        """
        Requests targeting a page, oldest first.

        Args:
            page_id: Target page
            open_only: True for open requests, False for closed ones,
                None for both
        """
        from cmsworkflow.db.models.workflow import WorkflowRequest

        query = self.db.query(WorkflowRequest).filter(WorkflowRequest.page_id == page_id)
        if open_only is True:
            query = query.filter(WorkflowRequest.status.in_([s.value for s in OPEN_STATUSES]))
        elif open_only is False:
            query = query.filter(WorkflowRequest.status.in_([s.value for s in TERMINAL_STATUSES]))

        return query.order_by(WorkflowRequest.created_at.asc()).all()

    def pending_reviews(self, publisher) -> List[PendingReview]:
        """Publication requests awaiting ``publisher``'s approval.

        Requests on pages the publisher can no longer publish are left out.
        """
        from cmsworkflow.db.models.member import Member
        from cmsworkflow.db.models.page import Page
        from cmsworkflow.db.models.workflow import WorkflowRequest

        requests = self.db.query(WorkflowRequest).join(
            Page, WorkflowRequest.page_id == Page.id,
        ).filter(
            WorkflowRequest.kind == RequestKind.PUBLICATION.value,
            WorkflowRequest.status == WorkflowStatus.AWAITING_APPROVAL.value,
            WorkflowRequest.publishers.any(Member.id == publisher.id),
        ).order_by(Page.last_edited.desc()).all()

        items = []
        for request in requests:
            if not request.page.can_publish(publisher):
                continue
            items.append(PendingReview(
                request_id=request.id,
                page_id=request.page_id,
                page_title=request.page.title,
                requested_at=request.created_at,
                author_id=request.author_id,
                author_email=request.author.email if request.author else None,
                publisher_id=request.publisher_id,
            ))
        return items

    def _pages(self, kinds, statuses, *criteria) -> List:
        from cmsworkflow.db.models.page import Page
        from cmsworkflow.db.models.workflow import WorkflowRequest

        page_ids = select(WorkflowRequest.page_id)
        if criteria:
            page_ids = page_ids.where(*criteria)
        if kinds:
            page_ids = page_ids.where(
                WorkflowRequest.kind.in_([RequestKind(k).value for k in kinds])
            )
        if statuses:
            page_ids = page_ids.where(
                WorkflowRequest.status.in_([WorkflowStatus(s).value for s in statuses])
            )

        return self.db.query(Page).filter(
            Page.id.in_(page_ids),
        ).order_by(Page.last_edited.desc(), Page.title.asc()).all()
