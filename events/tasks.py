# events/tasks.py
import logging

from celery import shared_task

from .emails import send_registration_emails
from .models import Event

logger = logging.getLogger("websters.events")


@shared_task
def send_registration_emails_task(event_id: int, record: dict):
    """
    Async wrapper for the confirmation emails of one registration.

    ``record`` is the stored registration in its serialized form (no files).
    Returns the per-recipient outcome so it shows up in the result backend.
    """
    try:
        event = Event.objects.get(id=event_id)
    except Event.DoesNotExist:
        logger.warning(f"Confirmation emails skipped: event {event_id} no longer exists")
        return {"sent": False, "error": "event_not_found"}

    main_result, member_errors = send_registration_emails(event, record)
    return {
        "sent": main_result.success,
        "main": main_result.to_dict(),
        "teamEmailErrors": member_errors,
    }
