# events/emails.py
"""
Registration confirmation mail.

``NotificationDispatcher.send`` never raises: every failure (transport error,
timeout, no free connection) comes back as ``NotificationResult(success=False)``
so a registration never fails because of mail.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.core.mail.message import make_msgid
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from core.mail import get_transport_pool
from .models import Festival

logger = logging.getLogger("websters.events")

_send_executor = None


def _executor():
    global _send_executor
    if _send_executor is None:
        _send_executor = ThreadPoolExecutor(
            max_workers=settings.EMAIL_POOL_SIZE * 2,
            thread_name_prefix="mail",
        )
    return _send_executor


class NotificationResult:
    def __init__(self, success, message_id=None, error=None, test_mode=False):
        self.success = success
        self.message_id = message_id
        self.error = error
        self.test_mode = test_mode

    def __repr__(self):
        if self.success:
            return f"<NotificationResult ok {self.message_id}>"
        return f"<NotificationResult failed {self.error!r}>"

    def to_dict(self):
        data = {"success": self.success}
        if self.success:
            data["messageId"] = self.message_id
        else:
            data["error"] = self.error
        if self.test_mode:
            data["testMode"] = True
        return data


class NotificationDispatcher:
    def __init__(self, pool=None, timeout=None):
        self._pool = pool
        self.timeout = timeout if timeout is not None else settings.EMAIL_SEND_TIMEOUT

    @property
    def pool(self):
        # Resolved per use so an expired pool is replaced
        return self._pool or get_transport_pool()

    def _build(self, recipient, subject, html, text=None):
        message_id = make_msgid(domain="websters")
        message = EmailMultiAlternatives(
            subject=subject,
            body=text or strip_tags(html),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[recipient],
            headers={"Message-ID": message_id},
        )
        message.attach_alternative(html, "text/html")
        return message, message_id

    def _deliver(self, pool, message):
        with pool.connection() as connection:
            message.connection = connection
            message.send(fail_silently=False)

    def send(self, recipient, subject, html, text=None):
        if not recipient or not subject or not html:
            return NotificationResult(False, error="Missing required email parameters (to, subject, or html)")

        try:
            pool = self.pool
            message, message_id = self._build(recipient, subject, html, text)
            future = _executor().submit(self._deliver, pool, message)
            future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning(f"Email to {recipient} timed out after {self.timeout}s")
            return NotificationResult(False, error=f"Email sending timed out after {self.timeout} seconds")
        except Exception as e:
            logger.warning(f"Error sending email to {recipient}: {e}")
            return NotificationResult(False, error=str(e))

        logger.info(f"Email sent to {recipient} ({message_id})")
        return NotificationResult(True, message_id=message_id, test_mode=pool.test_mode)


# -----------------------------
# Registration confirmations
# -----------------------------
def whatsapp_link_for(event, festival=None):
    """The event's own group link, else the festival-wide default."""
    if event.whatsapp_group:
        return event.whatsapp_group
    festival = festival or Festival.load()
    return festival.default_whatsapp_group or ""


def confirmation_context(event, record, participant, is_team_member=False, whatsapp_link=None):
    return {
        "event": event,
        "participant": participant,
        "team_name": record.get("teamName") or "",
        "team_members": record.get("teamMembers") or [],
        "leader": record["mainParticipant"],
        "is_team_member": is_team_member,
        "whatsapp_link": whatsapp_link_for(event) if whatsapp_link is None else whatsapp_link,
    }


def confirmation_subject(event):
    return event.email_subject or f"Registration Confirmed: {event.name}"


def send_registration_emails(event, record, dispatcher=None, whatsapp_link=None):
    """
    Confirmation to the main participant and to each team member, all in
    flight at once.

    Returns ``(main_result, member_errors)``; ``member_errors`` lists
    ``{"email", "error"}`` for members whose mail failed.
    """
    dispatcher = dispatcher or NotificationDispatcher()
    subject = confirmation_subject(event)
    if whatsapp_link is None:
        whatsapp_link = whatsapp_link_for(event)

    recipients = [(record["mainParticipant"], False)]
    recipients += [(member, True) for member in record.get("teamMembers") or []]

    def deliver(item):
        participant, is_team_member = item
        html = render_to_string(
            "events/emails/registration_confirmation.html",
            confirmation_context(event, record, participant, is_team_member, whatsapp_link=whatsapp_link),
        )
        return dispatcher.send(participant.get("email"), subject, html)

    with ThreadPoolExecutor(max_workers=len(recipients), thread_name_prefix="notify") as fan_out:
        results = list(fan_out.map(deliver, recipients))

    main_result = results[0]
    if not main_result.success:
        logger.warning(f"Confirmation email to {record['mainParticipant'].get('email')} failed: {main_result.error}")

    member_errors = [
        {"email": participant.get("email"), "error": result.error}
        for (participant, _), result in zip(recipients[1:], results[1:])
        if not result.success
    ]
    for failure in member_errors:
        logger.warning(f"Team member email to {failure['email']} failed: {failure['error']}")

    return main_result, member_errors
