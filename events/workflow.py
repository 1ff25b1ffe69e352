# websters-backend/events/workflow.py
"""
One registration attempt, start to finish.

RECEIVED → VALIDATED → DUPLICATE_FOUND → TOKEN_ISSUED → RESPONDED
                     └→ FILES_RELAYED → ROW_APPENDED → EMAIL_DISPATCHED → TOKEN_ISSUED → RESPONDED

Terminal failures: VALIDATION_FAILED, RELAY_FAILED, REGISTRY_WRITE_FAILED.
Nothing is rolled back: files relayed before a failed registry write stay
where they are.
"""
import logging
import uuid

from django.conf import settings
from django.utils import timezone

from core import tokens
from core.exceptions import (
    AuthInitializationError,
    DuplicateRegistration,
    RegistrationClosed,
    RegistryWriteError,
    UploadError,
    ValidationError,
)
from .emails import send_registration_emails, whatsapp_link_for
from .guards import DuplicateGuard, already_registered_message
from .registry import registry_for
from .relay import FileRelay
from .serializers import validate_registration

logger = logging.getLogger("websters.events")


RECEIVED = "received"
VALIDATED = "validated"
DUPLICATE_FOUND = "duplicate_found"
FILES_RELAYED = "files_relayed"
ROW_APPENDED = "row_appended"
EMAIL_DISPATCHED = "email_dispatched"
TOKEN_ISSUED = "token_issued"
RESPONDED = "responded"
VALIDATION_FAILED = "validation_failed"
RELAY_FAILED = "relay_failed"
REGISTRY_WRITE_FAILED = "registry_write_failed"

TERMINAL_FAILURES = (VALIDATION_FAILED, RELAY_FAILED, REGISTRY_WRITE_FAILED)

VALID_TRANSITIONS = {
    RECEIVED: [VALIDATED, VALIDATION_FAILED],
    # Registry failures here come from the destination / duplicate checks
    VALIDATED: [DUPLICATE_FOUND, FILES_RELAYED, VALIDATION_FAILED, RELAY_FAILED, REGISTRY_WRITE_FAILED],
    DUPLICATE_FOUND: [TOKEN_ISSUED],
    # The unique index can still report a duplicate at write time
    FILES_RELAYED: [ROW_APPENDED, DUPLICATE_FOUND, REGISTRY_WRITE_FAILED],
    ROW_APPENDED: [EMAIL_DISPATCHED],
    EMAIL_DISPATCHED: [TOKEN_ISSUED],
    TOKEN_ISSUED: [RESPONDED],
}


def ensure_registration_open(event, festival):
    if not festival.registration_enabled:
        raise RegistrationClosed("Registrations are currently closed")
    if not event.is_open:
        raise RegistrationClosed(
            f"Registration is closed for this event. Current status: {event.registration_status}"
        )


def _without_files(record):
    return {key: value for key, value in record.items() if key != "files"}


class RegistrationWorkflow:
    def __init__(self, event, festival, registry=None, relay=None, dispatcher=None,
                 request_id=None, retry_count=0, default_college=None):
        self.event = event
        self.festival = festival
        self.registry = registry or registry_for(event)
        self.relay = relay or FileRelay(event)
        self.dispatcher = dispatcher
        self.request_id = request_id or uuid.uuid4().hex[:12]
        self.retry_count = retry_count
        self.default_college = default_college
        self.state = RECEIVED
        self.history = [RECEIVED]

    # -----------------------------
    # state
    # -----------------------------
    def _transition(self, new_state):
        allowed = VALID_TRANSITIONS.get(self.state, [])
        if new_state not in allowed:
            raise RuntimeError(f"Invalid registration transition: {self.state} -> {new_state}")

        logger.info(f"[{self.request_id}] {self.event.slug}: {self.state} -> {new_state}")
        self.state = new_state
        self.history.append(new_state)

    # -----------------------------
    # run
    # -----------------------------
    def run(self, submission):
        """Returns the response payload; raises a RegistrationError subclass on failure."""
        logger.info(f"[{self.request_id}] Registration received for {self.event.slug}")
        if self.retry_count > 0:
            logger.info(f"[{self.request_id}] Retry attempt {self.retry_count}")

        try:
            record = validate_registration(self.event, submission, default_college=self.default_college)
        except ValidationError as e:
            self._transition(VALIDATION_FAILED)
            logger.info(f"[{self.request_id}] Validation failed on {', '.join(e.fields)}")
            raise
        self._transition(VALIDATED)

        try:
            self.registry.ensure_destination_ready()
            DuplicateGuard(self.registry).check(record)
        except DuplicateRegistration as dup:
            return self._already_registered(record, dup)
        except ValidationError:
            self._transition(VALIDATION_FAILED)
            raise
        except (RegistryWriteError, AuthInitializationError) as e:
            self._registry_failed(e)
            raise

        try:
            main_url, member_urls, failed_uploads = self.relay.relay_registration(
                record, required=self.event.requires_college_id
            )
        except (UploadError, AuthInitializationError) as e:
            self._transition(RELAY_FAILED)
            if isinstance(e, UploadError) and e.details is None:
                e.details = {"phase": "upload"}
            raise
        self._transition(FILES_RELAYED)

        record["collegeIdUrl"] = main_url
        for member, url in zip(record["teamMembers"], member_urls):
            member["collegeIdUrl"] = url

        try:
            stored = self.registry.append(record)
        except DuplicateRegistration as dup:
            return self._already_registered(record, dup)
        except (RegistryWriteError, AuthInitializationError) as e:
            self._registry_failed(e)
            raise
        self._transition(ROW_APPENDED)

        payload = self._notify(_without_files(stored))
        self._transition(EMAIL_DISPATCHED)

        payload.update(self._token(record["mainParticipant"]["email"]))
        if failed_uploads:
            payload["failedUploads"] = failed_uploads
        payload.update(
            success=True,
            message="Registration successful",
            eventName=self.event.name,
            whatsappLink=whatsapp_link_for(self.event, self.festival),
            alreadyRegistered=False,
            timestamp=timezone.now().isoformat(),
        )
        self._transition(RESPONDED)
        return payload

    # -----------------------------
    # steps
    # -----------------------------
    def _registry_failed(self, error):
        phase = getattr(error, "phase", None) or (error.details or {}).get("phase", "auth")
        logger.error(f"[{self.request_id}] Registry {self.registry.backend} failed during {phase}: {error.message}")
        self._transition(REGISTRY_WRITE_FAILED)

    def _notify(self, record):
        if settings.REGISTRATION["EMAILS_ASYNC"]:
            from .tasks import send_registration_emails_task

            try:
                send_registration_emails_task.delay(self.event.pk, record)
            except Exception as e:
                # Broker unreachable; the registration is already stored
                logger.warning(f"[{self.request_id}] Could not queue confirmation emails, sending inline: {e}")
            else:
                logger.info(f"[{self.request_id}] Confirmation emails queued")
                return {"emailSent": False, "emailQueued": True}

        main_result, member_errors = send_registration_emails(
            self.event, record, dispatcher=self.dispatcher, whatsapp_link=whatsapp_link_for(self.event, self.festival)
        )
        if not main_result.success:
            logger.warning(
                f"[{self.request_id}] Email notification failed but registration succeeded: {main_result.error}"
            )

        payload = {"emailSent": main_result.success}
        if member_errors:
            payload["teamEmailErrors"] = member_errors
        return payload

    def _token(self, email):
        token = tokens.issue(email)
        self._transition(TOKEN_ISSUED)
        return {"registrationToken": token}

    def _already_registered(self, record, dup):
        self._transition(DUPLICATE_FOUND)

        main = record["mainParticipant"]
        contact = main["email"] if dup.field == "email" else main["phone"]
        existing = dup.existing
        token_email = existing.main_email if existing is not None else main["email"]

        payload = self._token(token_email)
        payload.update(
            success=True,
            message=already_registered_message(self.event, contact, dup.field, existing),
            eventName=self.event.name,
            whatsappLink=whatsapp_link_for(self.event, self.festival),
            emailSent=False,
            alreadyRegistered=True,
            timestamp=timezone.now().isoformat(),
        )
        self._transition(RESPONDED)
        logger.info(f"[{self.request_id}] Already registered: {main['email']}")
        return payload
