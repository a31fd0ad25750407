import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Uuid
from sqlalchemy.orm import relationship

from cmsworkflow.db.base import Base


class Member(Base):
    __tablename__ = "members"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=True, index=True)
    first_name = Column(String(100), nullable=True)
    surname = Column(String(100), nullable=True)
    permissions = Column(JSON, nullable=False, default=list)  # "pages:publish", "pages:*", ...
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    authored_requests = relationship(
        "WorkflowRequest",
        back_populates="author",
        foreign_keys="WorkflowRequest.author_id",
    )

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.surname) if part)
        return name or self.email or str(self.id)

    def __repr__(self) -> str:
        return f"<Member {self.display_name}>"
