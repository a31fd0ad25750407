"""Celery workers for cmsworkflow."""

from cmsworkflow.workers.notification_tasks import (
    celery_app,
    dispatch_notification,
)

__all__ = [
    "celery_app",
    "dispatch_notification",
]
