"""Page database model.

A CMS page with separate draft and live version lineages, plus the members
allowed to edit and publish it.
"""

import uuid
from datetime import datetime
from typing import List
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Table, Uuid
from sqlalchemy.orm import relationship

from cmsworkflow.db.base import Base
from cmsworkflow.core.rbac import PAGE_EDIT, PAGE_PUBLISH, has_permission


page_editors = Table(
    "page_editors",
    Base.metadata,
    Column("page_id", Uuid, ForeignKey("pages.id", ondelete="CASCADE"), primary_key=True),
    Column("member_id", Uuid, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
)

page_publishers = Table(
    "page_publishers",
    Base.metadata,
    Column("page_id", Uuid, ForeignKey("pages.id", ondelete="CASCADE"), primary_key=True),
    Column("member_id", Uuid, ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
)


class Page(Base):
    """
    CMS page tracked by the workflow.

    ``draft_version`` is None for pages deleted from the draft stage and
    ``live_version`` is None for pages that were never published.
    """
    __tablename__ = "pages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    url_segment = Column(String(255), nullable=True)

    # Versioning
    draft_version = Column(Integer, nullable=True, default=1)
    live_version = Column(Integer, nullable=True)

    # Timestamps
    last_edited = Column(DateTime, default=datetime.utcnow, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    editors = relationship("Member", secondary=page_editors)
    publishers = relationship("Member", secondary=page_publishers)
    workflow_requests = relationship("WorkflowRequest", back_populates="page")

    def can_edit(self, member) -> bool:
        """Editors and publishers of the page, or members with pages:edit."""
        if member is None:
            return False
        if self.can_publish(member):
            return True
        if any(m.id == member.id for m in self.editors):
            return True
        return has_permission(member, PAGE_EDIT)

    def can_publish(self, member) -> bool:
        """Assigned publishers of the page, or members with pages:publish."""
        if member is None:
            return False
        if any(m.id == member.id for m in self.publishers):
            return True
        return has_permission(member, PAGE_PUBLISH)

    def publisher_members(self) -> List:
        return list(self.publishers)

    def revert_to_live(self) -> None:
        """Discard draft changes by resetting the draft to the live version.

        Pages that were never published have nothing to revert to and keep
        their draft.
        """
        if self.live_version is None:
            return
        self.draft_version = self.live_version
        self.last_edited = datetime.utcnow()

    def __repr__(self) -> str:
        return f"<Page {self.title} draft={self.draft_version} live={self.live_version}>"
