"""Services for cmsworkflow."""

from cmsworkflow.services.notifications import (
    NotificationDispatcher,
    SmtpMailSender,
    resolve_audience,
)

__all__ = [
    "NotificationDispatcher",
    "SmtpMailSender",
    "resolve_audience",
]
