"""Celery tasks for workflow notifications.

Notifications are queued after the workflow transition commits, so slow or
failing mail delivery never holds the request's transaction open.
"""

from typing import Any, Dict
import logging

from celery import Celery, shared_task

from cmsworkflow.core.config import get_settings
from cmsworkflow.core.workflow.collaborators import MemberDirectory
from cmsworkflow.core.workflow.events import NotificationEvent
from cmsworkflow.db.models.notification import DeliveryStatus
from cmsworkflow.db.session import SessionLocal
from cmsworkflow.services.notifications import NotificationDispatcher, SmtpMailSender

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'cmsworkflow',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'cmsworkflow.workers.notification_tasks.dispatch_notification': {'queue': 'notifications'},
    },
    task_default_queue='default',
)


@shared_task(bind=True, max_retries=0)
def dispatch_notification(self, event_payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deliver the notifications for one workflow event.

    Args:
        event_payload: NotificationEvent serialized with ``model_dump(mode="json")``

    Returns:
        Delivery counts by status
    """
    event = NotificationEvent.model_validate(event_payload)

    db = SessionLocal()
    try:
        dispatcher = NotificationDispatcher(
            MemberDirectory(db),
            SmtpMailSender(settings),
            settings=settings,
            db=db,
        )
        deliveries = dispatcher.dispatch(event)
    finally:
        db.close()

    summary = {
        "request_id": str(event.request_id),
        "event": event.kind.value,
        "sent": sum(1 for d in deliveries if d.status == DeliveryStatus.SENT),
        "failed": sum(1 for d in deliveries if d.status == DeliveryStatus.FAILED),
        "skipped": sum(1 for d in deliveries if d.status == DeliveryStatus.SKIPPED),
    }
    logger.info(
        f"Notifications for workflow request {summary['request_id']} ({summary['event']}): "
        f"{summary['sent']} sent, {summary['failed']} failed, {summary['skipped']} skipped"
    )
    return summary
