# websters-backend/events/validators.py
"""
Input sanitization and field rules for registrations.

Each ``validate_*`` helper either returns the cleaned value or raises
``InvalidValue`` with a human-readable reason. The serializers collect those
reasons per field, so a single submission reports every problem at once.
"""
import re
from typing import Iterable, List, Optional

import bleach
from django.conf import settings


class InvalidValue(ValueError):
    """Raised when a single value fails a rule."""
    pass


YEAR_CHOICES = ("1st Year", "2nd Year", "3rd Year")

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._%+-]*@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^[6-9]\d{9}$")


def _registration_setting(name):
    return settings.REGISTRATION[name]


# ─────────────────────────────────────────────────────────────
# Text
# ─────────────────────────────────────────────────────────────

def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize plain text input.

    - Strips leading/trailing whitespace
    - Removes control characters
    - Enforces maximum length
    - Returns empty string for None input
    """
    if text is None:
        return ""

    text = str(text).strip()

    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize_query(query: Optional[str], max_length: int = 2000) -> str:
    """Free-text question from the form. No markup survives."""
    if not query:
        return ""
    clean = bleach.clean(str(query), tags=[], attributes={}, strip=True)
    return sanitize_text(clean, max_length=max_length)


def require_text(value: Optional[str], label: str, min_length: int = 2, max_length: int = 255) -> str:
    text = sanitize_text(value, max_length=max_length)
    if not text:
        raise InvalidValue(f"{label} is required")
    if len(text) < min_length:
        raise InvalidValue(f"{label} must be at least {min_length} characters")
    return text


# ─────────────────────────────────────────────────────────────
# Contact details
# ─────────────────────────────────────────────────────────────

def is_placeholder_email(email: str) -> bool:
    local = email.split("@", 1)[0].lower()
    if local in _registration_setting("PLACEHOLDER_EMAIL_LOCALPARTS"):
        return True
    return any(local.startswith(prefix) for prefix in _registration_setting("PLACEHOLDER_EMAIL_PREFIXES"))


def is_academic_domain(email: str, domains: Optional[Iterable[str]] = None) -> bool:
    domain = email.rsplit("@", 1)[-1].lower()
    if domains is None:
        domains = _registration_setting("ACADEMIC_EMAIL_DOMAINS")
    return any(domain == allowed or domain.endswith("." + allowed) for allowed in domains)


def validate_email(email: Optional[str], academic_only: bool = False) -> str:
    """
    Syntax check, placeholder rejection and (optionally) the academic allow-list.

    Returns the lower-cased address.
    """
    if not email:
        raise InvalidValue("Email is required")

    email = sanitize_text(email, max_length=254)

    if not EMAIL_PATTERN.match(email):
        raise InvalidValue("Invalid email address")

    email = email.lower()

    if is_placeholder_email(email):
        raise InvalidValue("Please use your real email address")

    if academic_only and not is_academic_domain(email):
        raise InvalidValue("Please use your college email ID")

    return email


def normalize_phone(phone) -> str:
    """Digits as stored: spaces and dashes removed."""
    return re.sub(r"[\s-]", "", str(phone or ""))


def validate_phone(phone: Optional[str]) -> str:
    if not phone:
        raise InvalidValue("Phone number is required")

    phone = normalize_phone(phone)
    if len(phone) != 10:
        raise InvalidValue("Phone number must be exactly 10 digits")
    if not PHONE_PATTERN.match(phone):
        raise InvalidValue("Please enter a valid Indian mobile number")
    return phone


def validate_year(year: Optional[str]) -> str:
    year = sanitize_text(year)
    if year not in YEAR_CHOICES:
        raise InvalidValue("Please select your year")
    return year


# ─────────────────────────────────────────────────────────────
# Files
# ─────────────────────────────────────────────────────────────

def file_problems(upload, max_size: Optional[int] = None, allowed_types: Optional[Iterable[str]] = None) -> List[str]:
    """
    Every reason ``upload`` is unacceptable; empty list when it is fine.

    Size is checked independently of type so an oversized file is rejected
    whatever it claims to be.
    """
    max_size = max_size or _registration_setting("MAX_UPLOAD_SIZE")
    allowed_types = tuple(allowed_types or _registration_setting("ALLOWED_UPLOAD_TYPES"))

    problems = []
    size = getattr(upload, "size", 0) or 0
    if size > max_size:
        size_mb = size / (1024 * 1024)
        problems.append(
            f"File size ({size_mb:.2f}MB) exceeds the maximum limit of {max_size // (1024 * 1024)}MB"
        )

    content_type = (getattr(upload, "content_type", "") or "").lower()
    if content_type not in allowed_types:
        accepted = ", ".join(sorted({t.split("/", 1)[1] for t in allowed_types}))
        problems.append(f'File type "{content_type or "unknown"}" not accepted. Allowed types: {accepted}')

    return problems


def validate_file(upload, required: bool = False):
    if upload is None:
        if required:
            raise InvalidValue("College ID is required")
        return None
    problems = file_problems(upload)
    if problems:
        raise InvalidValue("; ".join(problems))
    return upload


# ─────────────────────────────────────────────────────────────
# Teams
# ─────────────────────────────────────────────────────────────

def validate_team_size(member_count: int, minimum: int, maximum: int) -> int:
    """``member_count`` excludes the main participant."""
    total = 1 + member_count
    if total < minimum or total > maximum:
        if minimum == maximum:
            raise InvalidValue(f"This event requires exactly {minimum} participants (got {total})")
        raise InvalidValue(f"Team size must be between {minimum} and {maximum} participants (got {total})")
    return total
