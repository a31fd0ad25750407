"""Append-only change log of a workflow request."""

import uuid
from datetime import datetime
from typing import Iterator, List, Optional

from .states import WorkflowStatus


class ChangeLog:
    """
    Ordered audit trail attached to a :class:`WorkflowRequest`.

    Entries are ordered by creation time, ties broken by insertion order.
    ``append`` is the only mutator; entries are never updated or removed.
    """

    def __init__(self, request):
        self.request = request

    def append(
        self,
        author,
        comment: Optional[str],
        status: Optional[WorkflowStatus],
        page,
    ):
        """
        Record a change with the page's current draft and live versions.

        Args:
            author: Actor performing the logged action
            comment: Free-text comment
            status: New status, or None for a plain comment
            page: Target page, snapshotted at the time of the entry

        Returns:
            The new WorkflowRequestChange
        """
        from cmsworkflow.db.models.workflow import WorkflowRequestChange

        entries = self.request.changes
        created_at = datetime.utcnow()
        if entries and entries[-1].created_at and entries[-1].created_at > created_at:
            # clock went backwards; keep timestamps monotonic
            created_at = entries[-1].created_at

        change = WorkflowRequestChange(
            id=uuid.uuid4(),
            sequence=len(entries),
            author_id=author.id,
            status=status.value if status else None,
            comment=comment,
            page_draft_version=page.draft_version,
            page_live_version=page.live_version,
            created_at=created_at,
        )
        entries.append(change)
        return change

    def entries(self) -> List:
        return list(self.request.changes)

    def latest(self):
        entries = self.request.changes
        return entries[-1] if entries else None

    def latest_status(self) -> Optional[WorkflowStatus]:
        """Most recent status recorded in the log, skipping plain comments."""
        for change in reversed(self.request.changes):
            if change.status:
                return WorkflowStatus(change.status)
        return None

    def __len__(self) -> int:
        return len(self.request.changes)

    def __iter__(self) -> Iterator:
        return iter(list(self.request.changes))
