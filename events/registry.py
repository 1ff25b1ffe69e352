# websters-backend/events/registry.py
"""
Registries: the system of record for registrations.

    registry = registry_for(event)
    registry.ensure_destination_ready()
    registry.find_existing(email, phone)   # via DuplicateGuard
    registry.append(record)

DatabaseRegistry writes Registration rows; SheetRegistry appends one row per
registration to the event kind's spreadsheet, creating the tab and header on
first use. Every failure surfaces as RegistryWriteError (with the phase that
failed) or AuthInitializationError.
"""
import logging
import threading
from contextlib import contextmanager

import httplib2
from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from core.exceptions import AuthInitializationError, DuplicateRegistration, RegistryWriteError
from core.google_services import get_service_account
from core.ttl_cache import TTLCache
from .guards import get_dedup_cache
from .models import Event, Registration

logger = logging.getLogger("websters.events")


class RegistryWriter:
    """Common interface; one instance per event per request."""
    backend = None

    def __init__(self, event):
        self.event = event

    def ensure_destination_ready(self):
        pass

    def find_existing(self, email, phone):
        """``{"field": "email"|"phone", "registration": <Registration|None>}`` or None."""
        raise NotImplementedError

    def team_conflicts(self, members):
        """[{field, reason}] for members already registered for this event."""
        return []

    def append(self, record):
        """Persist one registration. Returns ``record`` with ``id`` and ``registrationDate`` set."""
        raise NotImplementedError

    def lookup(self, email):
        """Stored registration for ``email`` in the serialized (camelCase) shape, or None."""
        raise NotImplementedError


def _conflict_errors(members, taken_emails, taken_phones):
    errors = []
    for index, member in enumerate(members):
        email = (member.get("email") or "").lower()
        phone = member.get("phone") or ""
        if email and email in taken_emails:
            errors.append({
                "field": f"teamMembers[{index}].email",
                "reason": f"The email address {email} is already registered for this event.",
            })
        if phone and phone in taken_phones:
            errors.append({
                "field": f"teamMembers[{index}].phone",
                "reason": f"The phone number {phone} is already registered for this event.",
            })
    return errors


# -------------------------------------------------------------------
# Database
# -------------------------------------------------------------------
class DatabaseRegistry(RegistryWriter):
    backend = Event.REGISTRY_DATABASE

    def _queryset(self):
        return Registration.objects.filter(event=self.event)

    def find_existing(self, email, phone):
        try:
            existing = self._queryset().filter(main_email=email.lower()).first()
            if existing is not None:
                return {"field": "email", "registration": existing}
            existing = self._queryset().filter(main_phone=phone).first()
            if existing is not None:
                return {"field": "phone", "registration": existing}
        except DatabaseError as e:
            logger.error(f"Duplicate check failed for event {self.event.slug}: {e}")
            raise RegistryWriteError("Failed to check registration status", phase="duplicate-check") from e
        return None

    def team_conflicts(self, members):
        if not members:
            return []

        taken_emails, taken_phones = set(), set()
        try:
            rows = self._queryset().values_list("main_email", "main_phone", "team_members")
            for main_email, main_phone, team in rows:
                taken_emails.add(main_email.lower())
                taken_phones.add(main_phone)
                for member in team or []:
                    taken_emails.add((member.get("email") or "").lower())
                    taken_phones.add(member.get("phone") or "")
        except DatabaseError as e:
            logger.error(f"Team member check failed for event {self.event.slug}: {e}")
            raise RegistryWriteError("Failed to check registration status", phase="duplicate-check") from e

        taken_emails.discard("")
        taken_phones.discard("")
        return _conflict_errors(members, taken_emails, taken_phones)

    def append(self, record):
        main = record["mainParticipant"]
        try:
            with transaction.atomic():
                registration = Registration.objects.create(
                    event=self.event,
                    event_name=self.event.name,
                    is_team_event=self.event.is_team_event,
                    team_name=record.get("teamName", ""),
                    main_participant=main,
                    main_email=main["email"].lower(),
                    main_phone=main["phone"],
                    team_members=record.get("teamMembers") or [],
                    college_id_url=record.get("collegeIdUrl", ""),
                    query=record.get("query", ""),
                )
        except IntegrityError as e:
            # Lost a race against an identical submission
            hit = self.find_existing(main["email"], main["phone"])
            raise DuplicateRegistration(
                main["email"],
                field=hit["field"] if hit else "email",
                existing=hit["registration"] if hit else None,
            ) from e
        except DatabaseError as e:
            logger.error(f"Failed to save registration for event {self.event.slug}: {e}")
            raise RegistryWriteError("Failed to save registration", phase="append") from e

        return dict(record, id=registration.pk, registrationDate=registration.registration_date.isoformat())

    def lookup(self, email):
        from .serializers import RegistrationRecordSerializer

        registration = (
            self._queryset().select_related("event").filter(main_email=email.lower()).first()
        )
        if registration is None:
            return None
        return RegistrationRecordSerializer(registration).data


# -------------------------------------------------------------------
# Google Sheets
# -------------------------------------------------------------------
SHEET_SCHEMA_VERSION = 2

PARTICIPANT_COLUMNS = [
    ("Name", "name"),
    ("Email", "email"),
    ("Phone", "phone"),
    ("Roll No", "rollNo"),
    ("Course", "course"),
    ("Year", "year"),
    ("College", "college"),
    ("Other College", "otherCollege"),
    ("College ID", "collegeIdUrl"),
]
MEMBER_SLOTS = 3

HEADER = (
    ["Timestamp", "Event ID", "Event Name", "Team Name"]
    + [label for label, _ in PARTICIPANT_COLUMNS]
    + [
        f"Member {slot} {label}"
        for slot in range(1, MEMBER_SLOTS + 1)
        for label, _ in PARTICIPANT_COLUMNS
    ]
    + ["Query", f"Schema v{SHEET_SCHEMA_VERSION}"]
)

MAIN_OFFSET = 4
EMAIL_COLUMN = HEADER.index("Email")
PHONE_COLUMN = HEADER.index("Phone")


def column_letter(index):
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


LAST_COLUMN = column_letter(len(HEADER) - 1)

# Main email/phone through the last member's phone; member slots repeat the
# participant block at a fixed stride
PARTICIPANT_WIDTH = len(PARTICIPANT_COLUMNS)
DEDUP_LAST_COLUMN = PHONE_COLUMN + PARTICIPANT_WIDTH * MEMBER_SLOTS
DEDUP_COLUMNS = f"{column_letter(EMAIL_COLUMN)}:{column_letter(DEDUP_LAST_COLUMN)}"


def _cells(participant):
    return [str(participant.get(key) or "") for _, key in PARTICIPANT_COLUMNS]


def record_to_row(event, record, timestamp):
    """
    Flatten one registration into a fixed-width row.

    Unused member slots are written as empty strings so columns never shift.
    """
    main = dict(record["mainParticipant"], collegeIdUrl=record.get("collegeIdUrl", ""))
    members = list(record.get("teamMembers") or [])[:MEMBER_SLOTS]
    members += [{}] * (MEMBER_SLOTS - len(members))

    row = [timestamp, event.slug, event.name, record.get("teamName", "")]
    row += _cells(main)
    for member in members:
        row += _cells(member)
    row += [record.get("query", ""), str(SHEET_SCHEMA_VERSION)]
    return row


def row_to_record(row):
    row = [str(cell) for cell in row] + [""] * (len(HEADER) - len(row))
    width = len(PARTICIPANT_COLUMNS)

    def participant(offset):
        return {key: row[offset + i] for i, (_, key) in enumerate(PARTICIPANT_COLUMNS)}

    main = participant(MAIN_OFFSET)
    members = []
    for slot in range(MEMBER_SLOTS):
        member = participant(MAIN_OFFSET + width * (slot + 1))
        if any(member.values()):
            members.append(member)

    college_id_url = main.pop("collegeIdUrl")
    return {
        "eventId": row[1],
        "eventName": row[2],
        "isTeamEvent": bool(members),
        "teamName": row[3],
        "mainParticipant": main,
        "teamMembers": members,
        "collegeIdUrl": college_id_url,
        "query": row[MAIN_OFFSET + width * (MEMBER_SLOTS + 1)],
        "registrationDate": row[0],
    }


_warm_cache = None
_warm_lock = threading.Lock()


def get_warm_cache():
    """Destinations verified recently; skips the tab/header check while warm."""
    global _warm_cache
    with _warm_lock:
        if _warm_cache is None:
            _warm_cache = TTLCache(ttl=settings.REGISTRATION["SHEET_WARM_TTL"], name="sheet-warm")
        return _warm_cache


PHASE_MESSAGES = {
    "sheet-check": "Failed to prepare registration sheet",
    "duplicate-check": "Failed to check registration status",
    "append": "Failed to save registration",
}


class SheetRegistry(RegistryWriter):
    backend = Event.REGISTRY_SHEETS

    def __init__(self, event, service_account=None, dedup_cache=None, warm_cache=None, spreadsheet_id=None):
        super().__init__(event)
        self.service_account = service_account or get_service_account()
        self.dedup_cache = dedup_cache or get_dedup_cache()
        self.warm_cache = warm_cache or get_warm_cache()
        self.spreadsheet_id = spreadsheet_id or settings.GOOGLE_SHEET_IDS.get(event.kind)

    @property
    def tab(self):
        return self.event.tab_name

    @property
    def key(self):
        return f"{self.spreadsheet_id}:{self.tab}"

    def _range(self, cells):
        escaped = self.tab.replace("'", "''")
        return f"'{escaped}'!{cells}"

    def _sheets(self):
        if not self.spreadsheet_id:
            name = f"GOOGLE_SHEET_ID_{self.event.kind.upper()}"
            raise AuthInitializationError(
                f"Missing required environment variables: {name}",
                missing=True,
                details={"phase": "auth", "missing": [name]},
            )
        return self.service_account.sheets()

    @contextmanager
    def _remote(self, phase):
        try:
            yield
        except HttpError as e:
            status = e.resp.status
            logger.error(f"Sheets {phase} failed for {self.key}: HTTP {status}")
            if status == 401:
                self.service_account.invalidate()
                raise AuthInitializationError(details={"phase": "auth", "status": status}) from e
            raise RegistryWriteError(
                PHASE_MESSAGES[phase], phase=phase, details={"phase": phase, "status": status}
            ) from e
        except GoogleAuthError as e:
            logger.error(f"Sheets {phase} failed for {self.key}: token refresh rejected: {e}")
            self.service_account.invalidate()
            raise AuthInitializationError(details={"phase": "auth"}) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            reason = "timeout" if isinstance(e, TimeoutError) else str(e)
            logger.error(f"Sheets {phase} failed for {self.key}: {reason}")
            raise RegistryWriteError(
                PHASE_MESSAGES[phase], phase=phase, details={"phase": phase, "reason": reason}
            ) from e

    # -----------------------------
    # destination
    # -----------------------------
    def ensure_destination_ready(self):
        if self.warm_cache.get(self.key):
            return

        sheets = self._sheets()
        with self._remote("sheet-check"):
            meta = sheets.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties.title",
            ).execute()
            titles = {s["properties"]["title"] for s in meta.get("sheets", [])}

            current = []
            if self.tab not in titles:
                sheets.spreadsheets().batchUpdate(
                    spreadsheetId=self.spreadsheet_id,
                    body={"requests": [{"addSheet": {"properties": {"title": self.tab}}}]},
                ).execute()
                logger.info(f"Created sheet tab '{self.tab}' in {self.spreadsheet_id}")
            else:
                response = sheets.spreadsheets().values().get(
                    spreadsheetId=self.spreadsheet_id,
                    range=self._range("1:1"),
                ).execute()
                current = (response.get("values") or [[]])[0]

            if not current:
                sheets.spreadsheets().values().update(
                    spreadsheetId=self.spreadsheet_id,
                    range=self._range("A1"),
                    valueInputOption="RAW",
                    body={"values": [HEADER]},
                ).execute()
                logger.info(f"Wrote header (schema v{SHEET_SCHEMA_VERSION}) to {self.key}")
            elif current != HEADER:
                logger.warning(f"Header of {self.key} does not match schema v{SHEET_SCHEMA_VERSION}; leaving it as is")

        self.warm_cache.set(self.key, True)

    # -----------------------------
    # duplicates
    # -----------------------------
    def _reload_index(self):
        sheets = self._sheets()
        with self._remote("duplicate-check"):
            response = sheets.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=self._range(DEDUP_COLUMNS),
                valueRenderOption="UNFORMATTED_VALUE",
                majorDimension="ROWS",
            ).execute()

        rows = response.get("values") or []
        span = PHONE_COLUMN - EMAIL_COLUMN
        mains, members = [], []
        # First row is the header
        for row in rows[1:]:
            if not row or not row[0]:
                continue
            cells = [str(cell) for cell in row]
            cells += [""] * (DEDUP_LAST_COLUMN - EMAIL_COLUMN + 1 - len(cells))
            mains.append((cells[0], cells[span]))
            for slot in range(1, MEMBER_SLOTS + 1):
                offset = PARTICIPANT_WIDTH * slot
                if cells[offset] or cells[offset + span]:
                    members.append((cells[offset], cells[offset + span]))
        return self.dedup_cache.rebuild(self.key, mains, members=members)

    def find_existing(self, email, phone):
        index = self.dedup_cache.get(self.key)
        if index is not None:
            field = index.match(email, phone)
            if field:
                return {"field": field, "registration": None}
            if len(index):
                return None

        field = self._reload_index().match(email, phone)
        return {"field": field, "registration": None} if field else None

    def team_conflicts(self, members):
        index = self.dedup_cache.get(self.key)
        if index is None or not members:
            return []
        return _conflict_errors(members, index.taken_emails, index.taken_phones)

    # -----------------------------
    # write / read
    # -----------------------------
    def append(self, record):
        timestamp = timezone.now().isoformat()
        row = record_to_row(self.event, record, timestamp)
        sheets = self._sheets()
        with self._remote("append"):
            sheets.spreadsheets().values().append(
                spreadsheetId=self.spreadsheet_id,
                range=self._range(f"A:{LAST_COLUMN}"),
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [row]},
            ).execute()

        main = record["mainParticipant"]
        self.dedup_cache.remember(
            self.key,
            main["email"],
            main["phone"],
            members=[(m.get("email"), m.get("phone")) for m in record.get("teamMembers") or []],
        )
        logger.info(f"Appended registration for {main['email']} to {self.key}")
        return dict(record, id=None, registrationDate=timestamp)

    def lookup(self, email):
        sheets = self._sheets()
        with self._remote("duplicate-check"):
            response = sheets.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=self._range(f"A:{LAST_COLUMN}"),
            ).execute()

        email = email.lower()
        for row in (response.get("values") or [])[1:]:
            if len(row) > EMAIL_COLUMN and str(row[EMAIL_COLUMN]).lower() == email:
                return row_to_record(row)
        return None


def registry_for(event, **kwargs):
    if event.registry_backend == Event.REGISTRY_SHEETS:
        return SheetRegistry(event, **kwargs)
    return DatabaseRegistry(event)
