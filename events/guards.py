# websters-backend/events/guards.py
"""
Duplicate-registration guard.

Runs after validation and before any side effect. Two lookup strategies sit
behind the registry's ``find_existing``:

- database: indexed point lookup, with the (event, email) / (event, phone)
  unique constraints as the final word at write time
- sheets: a per-sheet index of seen emails/phones, held in a TTLCache and
  rebuilt from a full remote read when stale. The index is never
  authoritative: two first-time submissions racing each other can both pass
  it before either row is appended.
"""
import logging
import threading

from django.conf import settings

from core.exceptions import DuplicateRegistration, ValidationError
from core.ttl_cache import TTLCache

logger = logging.getLogger("websters.events")


class DedupIndex:
    """
    Emails/phones already present in one sheet.

    Main participants go in ``emails``/``phones``; team members go in
    ``member_emails``/``member_phones`` and only count in the team check.
    """

    def __init__(self, emails=(), phones=(), member_emails=(), member_phones=()):
        self.emails = {str(e).strip().lower() for e in emails if e}
        self.phones = {str(p).strip() for p in phones if p}
        self.member_emails = {str(e).strip().lower() for e in member_emails if e}
        self.member_phones = {str(p).strip() for p in member_phones if p}
        self._lock = threading.Lock()

    @property
    def taken_emails(self):
        return self.emails | self.member_emails

    @property
    def taken_phones(self):
        return self.phones | self.member_phones

    def match(self, email, phone):
        """'email', 'phone' or None."""
        if email and email.lower() in self.emails:
            return "email"
        if phone and str(phone) in self.phones:
            return "phone"
        return None

    def add(self, email, phone, members=()):
        with self._lock:
            if email:
                self.emails.add(email.lower())
            if phone:
                self.phones.add(str(phone))
            for member_email, member_phone in members:
                if member_email:
                    self.member_emails.add(member_email.lower())
                if member_phone:
                    self.member_phones.add(str(member_phone))

    def __len__(self):
        return len(self.emails)


class SheetDedupCache:
    """
    Process-wide ``{sheet key -> DedupIndex}``.

    Entries are replaced wholesale by ``rebuild`` when their TTL runs out;
    ``remember`` only ever adds to a live entry.
    """

    def __init__(self, cache=None):
        self.cache = cache or TTLCache(ttl=settings.REGISTRATION["DEDUP_CACHE_TTL"], name="sheet-dedup")

    def get(self, key):
        return self.cache.get(key)

    def rebuild(self, key, rows, members=()):
        """
        ``rows`` holds the (email, phone) of each main participant read from
        the remote sheet, ``members`` those of the team members.
        """
        rows, members = list(rows), list(members)
        index = DedupIndex(
            [email for email, _ in rows],
            [phone for _, phone in rows],
            [email for email, _ in members],
            [phone for _, phone in members],
        )
        self.cache.set(key, index)
        logger.info(f"Dedup index rebuilt for {key}: {len(index)} registrations")
        return index

    def remember(self, key, email, phone, members=()):
        index = self.cache.get(key)
        if index is not None:
            index.add(email, phone, members)

    def invalidate(self, key=None):
        if key is None:
            self.cache.invalidate()
        else:
            self.cache.invalidate(key)


_dedup_cache = None


def get_dedup_cache():
    global _dedup_cache
    if _dedup_cache is None:
        _dedup_cache = SheetDedupCache()
    return _dedup_cache


def already_registered_message(event, contact, field, existing=None):
    """
    Human explanation of who already holds ``contact`` for ``event``.

    ``existing`` is a stored Registration when the registry can produce one.
    """
    label = "email address" if field == "email" else "phone number"
    if existing is None:
        return f"The {label} {contact} is already registered for \"{event.name}\"."

    leader = existing.main_participant or {}
    if existing.is_team_event:
        team = existing.team_name or "Unnamed Team"
        leader_value = leader.get(field)
        role = f'the team leader of "{team}"' if leader_value == contact else f'a team member in "{team}"'
    else:
        role = "an individual participant"
    return (
        f"The {label} {contact} is already registered for \"{event.name}\" "
        f"as {role} under the name \"{leader.get('name', '')}\"."
    )


class DuplicateGuard:
    def __init__(self, registry):
        self.registry = registry

    def check(self, record):
        """
        Raises DuplicateRegistration when the main participant is already in the
        registry, ValidationError when a team member is.
        """
        main = record["mainParticipant"]
        hit = self.registry.find_existing(main["email"], main["phone"])
        if hit is not None:
            field = hit["field"]
            contact = main["email"] if field == "email" else main["phone"]
            logger.info(f"Duplicate {field} for event {self.registry.event.slug}: {contact}")
            raise DuplicateRegistration(main["email"], field=field, existing=hit.get("registration"))

        conflicts = self.registry.team_conflicts(record.get("teamMembers") or [])
        if conflicts:
            raise ValidationError(conflicts, message="Team member already registered")
