"""Notification dispatch for workflow transitions.

Handles:
- Resolving who hears about each transition
- Building structured message contexts and subjects
- Email delivery over SMTP
- Notification history for audit and debugging

Delivery is best effort: failures are logged and recorded, never retried and
never propagated to the workflow.
"""

import asyncio
import concurrent.futures
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import aiosmtplib
from jinja2 import DictLoader, Environment, StrictUndefined
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cmsworkflow.core.config import get_settings
from cmsworkflow.core.workflow.collaborators import IdentityProvider, MailSender
from cmsworkflow.core.workflow.events import NotificationEvent, NotificationKind
from cmsworkflow.core.workflow.states import RequestKind
from cmsworkflow.db.models.notification import DeliveryStatus, NotificationLog

logger = logging.getLogger(__name__)


GENERIC_EMAIL_TEMPLATE = "workflow_generic_email"

# Email body templates
EMAIL_TEMPLATES = {
    GENERIC_EMAIL_TEMPLATE: """Dear {{ recipient_name }},

{{ paragraph }}
{% if comment %}
Comment from {{ sender_name }}:

{{ comment }}
{% endif %}
Status: {{ status_description }}
Review the page in the CMS: {{ page_cms_link }}

---
{{ app_name }}
""",
}

# Subject and opening paragraph per notification kind
MESSAGE_TEMPLATES = {
    NotificationKind.AWAITING_APPROVAL: {
        "subject": 'Page "{{ page_title }}" is awaiting your approval',
        "paragraph": '{{ sender_name }} has asked you to review and approve changes to "{{ page_title }}".',
    },
    NotificationKind.APPROVED: {
        "subject": 'Your changes to "{{ page_title }}" were approved',
        "paragraph": '{{ sender_name }} has approved your changes to "{{ page_title }}".',
    },
    NotificationKind.DENIED: {
        "subject": 'Your changes to "{{ page_title }}" were denied',
        "paragraph": '{{ sender_name }} has denied your changes to "{{ page_title }}". '
                     'The draft has been reverted to the published version.',
    },
    NotificationKind.AWAITING_EDIT: {
        "subject": 'Changes requested on "{{ page_title }}"',
        "paragraph": '{{ sender_name }} has asked you to edit "{{ page_title }}" before it can be approved.',
    },
    NotificationKind.COMMENT: {
        "subject": 'New comment on "{{ page_title }}"',
        "paragraph": '{{ sender_name }} commented on the workflow request for "{{ page_title }}".',
    },
}

# Deletion requests talk about removing the page instead
DELETION_MESSAGE_TEMPLATES = {
    NotificationKind.AWAITING_APPROVAL: {
        "subject": 'Deletion of "{{ page_title }}" is awaiting your approval',
        "paragraph": '{{ sender_name }} has asked you to approve removing "{{ page_title }}" from the live site.',
    },
    NotificationKind.APPROVED: {
        "subject": 'Deletion of "{{ page_title }}" was approved',
        "paragraph": '{{ sender_name }} has approved removing "{{ page_title }}" from the live site.',
    },
    NotificationKind.DENIED: {
        "subject": 'Deletion of "{{ page_title }}" was denied',
        "paragraph": '{{ sender_name }} has denied removing "{{ page_title }}" from the live site.',
    },
    NotificationKind.AWAITING_EDIT: {
        "subject": 'Changes requested before deleting "{{ page_title }}"',
        "paragraph": '{{ sender_name }} has asked for changes before "{{ page_title }}" can be deleted.',
    },
}

_env = Environment(loader=DictLoader(EMAIL_TEMPLATES), undefined=StrictUndefined, keep_trailing_newline=True)

STATUS_LABELS = {
    NotificationKind.AWAITING_APPROVAL: "Awaiting Approval",
    NotificationKind.APPROVED: "Approved",
    NotificationKind.DENIED: "Denied",
    NotificationKind.AWAITING_EDIT: "Awaiting Edit",
}


@dataclass(frozen=True)
class MessageContext:
    """Variables available to email templates."""
    page_id: UUID
    page_title: str
    page_cms_link: str
    recipient_name: str
    sender_name: str
    sender_email: str
    comment: str
    paragraph: str
    status_description: str
    request_kind: str
    app_name: str

    def as_template_vars(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NotificationMessage:
    """One email handed to the mail sender."""
    recipient_email: str
    sender_email: str
    subject: str
    template_name: str
    context: MessageContext


@dataclass
class Delivery:
    """Outcome of notifying one recipient."""
    recipient_id: UUID
    status: DeliveryStatus
    recipient_email: Optional[str] = None
    sender_email: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    error: Optional[str] = None
    sent_at: Optional[datetime] = field(default=None)

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


def build_message(
    kind: NotificationKind,
    request_kind: RequestKind,
    page_title: str,
    sender_name: str,
) -> Tuple[str, str]:
    """
    Subject and opening paragraph for a notification.

    Returns:
        (subject, paragraph)
    """
    templates = MESSAGE_TEMPLATES[kind]
    if request_kind == RequestKind.DELETION:
        templates = DELETION_MESSAGE_TEMPLATES.get(kind, templates)

    values = {"page_title": page_title, "sender_name": sender_name}
    subject = _env.from_string(templates["subject"]).render(**values)
    paragraph = _env.from_string(templates["paragraph"]).render(**values)
    return subject, paragraph


def render_email(template_name: str, context: MessageContext) -> str:
    """Render an email body template with a message context."""
    return _env.get_template(template_name).render(**context.as_template_vars())


def resolve_audience(event: NotificationEvent) -> List[UUID]:
    """
    Members to notify about an event, without duplicates.

    - Awaiting approval: the assigned publishers
    - Approved, denied, awaiting edit: the request author
    - Comment: the author and assigned publishers, except the commenter
    """
    if event.kind == NotificationKind.AWAITING_APPROVAL:
        candidates = list(event.publisher_ids)
    elif event.kind == NotificationKind.COMMENT:
        candidates = [event.author_id] + list(event.publisher_ids)
        candidates = [c for c in candidates if c != event.actor_id]
    else:
        candidates = [event.author_id]

    audience = []
    for member_id in candidates:
        if member_id is not None and member_id not in audience:
            audience.append(member_id)
    return audience


class NotificationDispatcher:
    """
    Sends workflow notifications to the audience of each event.
    """

    def __init__(
        self,
        identities: IdentityProvider,
        mail_sender: MailSender,
        *,
        settings=None,
        db: Optional[Session] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            identities: IdentityProvider resolving member IDs
            mail_sender: MailSender delivering the emails
            settings: Application settings
            db: Optional session used to record NotificationLog entries
        """
        self.identities = identities
        self.mail_sender = mail_sender
        self.settings = settings or get_settings()
        self.db = db

    def build_messages(self, event: NotificationEvent) -> List[Tuple[UUID, Optional[NotificationMessage]]]:
        """
        One message per audience member.

        Members that cannot be resolved to an email address get None.
        """
        sender = self.identities.resolve(event.actor_id)
        sender_name = sender.display_name if sender else "A CMS user"
        sender_email = sender.email if sender and sender.email else self.settings.mail_admin_email

        subject, paragraph = build_message(
            event.kind, event.request_kind, event.page_title, sender_name,
        )

        messages = []
        for recipient_id in resolve_audience(event):
            recipient = self.identities.resolve(recipient_id)
            if recipient is None or not recipient.email:
                messages.append((recipient_id, None))
                continue

            context = MessageContext(
                page_id=event.page_id,
                page_title=event.page_title,
                page_cms_link=f"{self.settings.cms_admin_url}/show/{event.page_id}",
                recipient_name=recipient.display_name,
                sender_name=sender_name,
                sender_email=sender_email,
                comment=event.comment,
                paragraph=paragraph,
                status_description=STATUS_LABELS.get(event.kind, ""),
                request_kind=event.request_kind.value,
                app_name=self.settings.app_name,
            )
            messages.append((recipient_id, NotificationMessage(
                recipient_email=recipient.email,
                sender_email=sender_email,
                subject=subject,
                template_name=GENERIC_EMAIL_TEMPLATE,
                context=context,
            )))
        return messages

    def dispatch(self, event: NotificationEvent) -> List[Delivery]:
        """
        Notify everyone interested in an event.

        Args:
            event: The transition to report

        Returns:
            One Delivery per audience member
        """
        deliveries = []
        for recipient_id, message in self.build_messages(event):
            if message is None:
                logger.warning(
                    f"No email address for member {recipient_id}, "
                    f"skipping {event.kind.value} notification"
                )
                deliveries.append(Delivery(recipient_id=recipient_id, status=DeliveryStatus.SKIPPED))
                continue
            deliveries.append(self._send(recipient_id, message))

        if self.db is not None:
            self._record(event, deliveries)

        return deliveries

    def _send(self, recipient_id: UUID, message: NotificationMessage) -> Delivery:
        delivery = Delivery(
            recipient_id=recipient_id,
            status=DeliveryStatus.FAILED,
            recipient_email=message.recipient_email,
            sender_email=message.sender_email,
            subject=message.subject,
            body=render_email(message.template_name, message.context),
        )
        try:
            sent = self.mail_sender.send(
                message.recipient_email,
                message.sender_email,
                message.subject,
                message.template_name,
                message.context,
            )
        except Exception as e:
            logger.exception(f"Failed to send notification to {message.recipient_email}")
            delivery.error = str(e)
            return delivery

        if sent:
            delivery.status = DeliveryStatus.SENT
            delivery.sent_at = datetime.utcnow()
        else:
            logger.warning(f"Mail sender did not deliver notification to {message.recipient_email}")
            delivery.error = "Mail sender reported failure"
        return delivery

    def _record(self, event: NotificationEvent, deliveries: List[Delivery]) -> None:
        """Store notification history; a failure here only gets logged."""
        for delivery in deliveries:
            self.db.add(NotificationLog(
                request_id=event.request_id,
                event=event.kind.value,
                recipient_id=delivery.recipient_id,
                recipient=delivery.recipient_email,
                sender=delivery.sender_email,
                subject=delivery.subject,
                body=delivery.body,
                status=delivery.status.value,
                error_message=delivery.error,
                sent_at=delivery.sent_at,
            ))
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to record notifications for workflow request {event.request_id}")


def _run_sync(coro) -> None:
    """Run a coroutine to completion from synchronous code.

    Inside a running event loop the coroutine gets its own loop on a worker
    thread, since ``asyncio.run`` refuses to nest.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(coro)
        return

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        pool.submit(asyncio.run, coro).result()


class SmtpMailSender:
    """MailSender delivering rendered templates over SMTP.

    ``send`` is synchronous and may be called with or without a running
    event loop.
    """

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    def send(
        self,
        recipient_email: str,
        sender_email: str,
        subject: str,
        template_name: str,
        context: MessageContext,
    ) -> bool:
        """Render and deliver one email. Returns False if nothing was sent."""
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, skipping email delivery")
            return False

        msg = MIMEMultipart()
        msg["From"] = formataddr((context.sender_name or self.settings.smtp_from_name, sender_email))
        msg["To"] = recipient_email
        msg["Subject"] = subject
        msg.attach(MIMEText(render_email(template_name, context), "plain"))

        try:
            _run_sync(self._deliver(msg))
        except (aiosmtplib.SMTPException, OSError):
            logger.exception(f"Failed to send email to {recipient_email}")
            return False
        return True

    async def _deliver(self, msg: MIMEMultipart) -> None:
        await aiosmtplib.send(
            msg,
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_user,
            password=self.settings.smtp_password,
            start_tls=self.settings.smtp_use_tls,
            timeout=self.settings.smtp_timeout,
        )
