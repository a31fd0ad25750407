"""Notification history model."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from cmsworkflow.db.base import Base


class DeliveryStatus(str, Enum):
    """Outcome of a single notification attempt."""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # recipient unknown or without an email address


class NotificationLog(Base):
    """
    Log of workflow notification emails for audit and debugging.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id = Column(Uuid, ForeignKey("workflow_requests.id", ondelete="SET NULL"), nullable=True, index=True)

    # Notification details
    event = Column(String(50), nullable=False)
    recipient_id = Column(Uuid, ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    recipient = Column(String(255), nullable=True)  # email address
    sender = Column(String(255), nullable=True)

    # Payload
    subject = Column(String(512), nullable=True)
    body = Column(Text, nullable=True)

    # Status
    status = Column(String(50), nullable=False, default=DeliveryStatus.SENT.value)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)

    # Relationships
    request = relationship("WorkflowRequest")

    def __repr__(self) -> str:
        return f"<NotificationLog {self.event} to {self.recipient} [{self.status}]>"
