"""Interfaces of the collaborators the workflow engine consumes.

:class:`cmsworkflow.db.models.Page` and :class:`cmsworkflow.db.models.Member`
satisfy the page and actor protocols; any other CMS can plug in its own.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from sqlalchemy.orm import Session


class Actor(Protocol):
    """An identity performing workflow operations."""

    id: UUID


class PageProvider(Protocol):
    """The page a workflow request targets."""

    id: UUID
    title: str
    draft_version: Optional[int]
    live_version: Optional[int]

    def can_edit(self, actor: Actor) -> bool: ...

    def can_publish(self, actor: Actor) -> bool: ...

    def revert_to_live(self) -> None: ...

    def publisher_members(self) -> List[Any]: ...


@dataclass(frozen=True)
class Identity:
    """Display name and email address of a member."""
    id: UUID
    display_name: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    def resolve(self, member_id: UUID) -> Optional[Identity]: ...


class MailSender(Protocol):
    """Delivers one email; returns False when delivery did not happen."""

    def send(
        self,
        recipient_email: str,
        sender_email: str,
        subject: str,
        template_name: str,
        context: Any,
    ) -> bool: ...


def identity_of(member) -> Identity:
    """Build an :class:`Identity` from a Member-like object."""
    return Identity(
        id=member.id,
        display_name=getattr(member, "display_name", None) or str(member.id),
        email=getattr(member, "email", None),
    )


class MemberDirectory:
    """IdentityProvider backed by the ``members`` table."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, member_id: UUID) -> Optional[Identity]:
        from cmsworkflow.db.models.member import Member

        if member_id is None:
            return None
        member = self.db.get(Member, member_id)
        return identity_of(member) if member else None


class StaticDirectory:
    """IdentityProvider over a fixed set of members, for use without a database."""

    def __init__(self, members: Iterable = ()):
        self._identities: Dict[UUID, Identity] = {}
        for member in members:
            self.add(member)

    def add(self, member) -> None:
        identity = member if isinstance(member, Identity) else identity_of(member)
        self._identities[identity.id] = identity

    def resolve(self, member_id: UUID) -> Optional[Identity]:
        return self._identities.get(member_id)
