"""Workflow request database models.

Stores workflow requests and the change log recorded for each of them.
"""

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import (
    Column, String, DateTime, Integer, ForeignKey, Text, Table, Index, Uuid, text,
)
from sqlalchemy.orm import relationship

from cmsworkflow.db.base import Base
from cmsworkflow.core.workflow.states import (
    WorkflowStatus,
    RequestKind,
    OPEN_STATUSES,
    status_description,
)


_OPEN_STATUS_SQL = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in sorted(OPEN_STATUSES, key=lambda s: s.value))
)


workflow_request_publishers = Table(
    "workflow_request_publishers",
    Base.metadata,
    Column("request_id", Uuid, ForeignKey("workflow_requests.id", ondelete="CASCADE"), primary_key=True),
    Column("member_id", Uuid, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
)


class WorkflowRequest(Base):
    """
    A full review process for one set of changes to a single page.

    Only one request may be open for a page at any time; a page may have any
    number of closed, historical requests. Status only changes through
    :class:`cmsworkflow.core.workflow.machine.WorkflowStateMachine`.
    """
    __tablename__ = "workflow_requests"
    __table_args__ = (
        Index(
            "uq_workflow_requests_open_page",
            "page_id",
            unique=True,
            postgresql_where=text(_OPEN_STATUS_SQL),
            sqlite_where=text(_OPEN_STATUS_SQL),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(String(50), nullable=False, default=RequestKind.PUBLICATION.value, index=True)

    # Workflow state, NULL only before the first request() call
    status = Column(String(50), nullable=True, index=True)

    # Actors
    author_id = Column(Uuid, ForeignKey("members.id", ondelete="SET NULL"), nullable=True, index=True)
    publisher_id = Column(Uuid, ForeignKey("members.id", ondelete="SET NULL"), nullable=True)  # last reviewer to act

    # Target
    page_id = Column(Uuid, ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    page = relationship("Page", back_populates="workflow_requests")
    author = relationship("Member", foreign_keys=[author_id], back_populates="authored_requests")
    publisher = relationship("Member", foreign_keys=[publisher_id])
    publishers = relationship("Member", secondary=workflow_request_publishers)
    changes = relationship(
        "WorkflowRequestChange",
        back_populates="request",
        cascade="all",
        order_by=lambda: [WorkflowRequestChange.created_at, WorkflowRequestChange.sequence],
    )

    @property
    def workflow_status(self) -> Optional[WorkflowStatus]:
        return WorkflowStatus(self.status) if self.status else None

    @property
    def request_kind(self) -> RequestKind:
        return RequestKind(self.kind) if self.kind else RequestKind.PUBLICATION

    @property
    def assigned_publisher_ids(self) -> list:
        return [m.id for m in self.publishers]

    @property
    def status_description(self) -> str:
        return status_description(self.status)

    def is_open(self) -> bool:
        """A request stays open until it is approved or denied."""
        return self.workflow_status in OPEN_STATUSES

    def __repr__(self) -> str:
        return f"<WorkflowRequest {self.kind} page={self.page_id} [{self.status}]>"


class WorkflowRequestChange(Base):
    """
    One entry in a request's change log.

    Entries are append-only. ``status`` is NULL for plain comments.
    """
    __tablename__ = "workflow_request_changes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid, ForeignKey("workflow_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=0)  # insertion order within the request

    # Actor and action
    author_id = Column(Uuid, ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(50), nullable=True)
    comment = Column(Text, nullable=True)

    # Page versions at the time of the change
    page_draft_version = Column(Integer, nullable=True)
    page_live_version = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    request = relationship("WorkflowRequest", back_populates="changes")
    author = relationship("Member")

    @property
    def workflow_status(self) -> Optional[WorkflowStatus]:
        return WorkflowStatus(self.status) if self.status else None

    @property
    def status_description(self) -> str:
        return status_description(self.status) if self.status else ""

    def __repr__(self) -> str:
        return f"<WorkflowRequestChange #{self.sequence} [{self.status or 'comment'}]>"
