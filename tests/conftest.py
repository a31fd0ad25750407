"""Pytest configuration and shared fixtures."""

from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cmsworkflow.core.config import Settings
from cmsworkflow.db.base import Base
import cmsworkflow.db.models  # noqa: F401  registers all tables on Base.metadata


class RecordingMailSender:
    """MailSender that keeps every message instead of delivering it."""

    def __init__(self, result: bool = True, fail_for: tuple = ()):
        self.result = result
        self.fail_for = set(fail_for)
        self.sent: List[dict] = []

    def send(self, recipient_email, sender_email, subject, template_name, context):
        if recipient_email in self.fail_for:
            raise ConnectionError(f"mailbox unavailable: {recipient_email}")
        self.sent.append({
            "recipient_email": recipient_email,
            "sender_email": sender_email,
            "subject": subject,
            "template_name": template_name,
            "context": context,
        })
        return self.result

    @property
    def recipients(self) -> List[str]:
        return [m["recipient_email"] for m in self.sent]


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        cms_base_url="https://cms.example.org",
        mail_admin_email="admin@example.org",
        notification_mode="inline",
        smtp_host=None,
    )


@pytest.fixture
def mail_sender():
    return RecordingMailSender()


@pytest.fixture
def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session mirroring the application's session factory."""
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    yield session
    session.rollback()
    session.close()
