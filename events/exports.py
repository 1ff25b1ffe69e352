# events/exports.py
"""
CSV exports of registrations.

Column order is fixed per event kind. Values go through csv.writer's minimal
quoting (quotes doubled, fields with a comma, quote or newline wrapped);
missing values are written as N/A.
"""
import csv

from django.conf import settings
from django.utils import timezone

from .models import Event

MISSING = "N/A"

TECHELONS_HEADERS = [
    "Event ID",
    "Event Name",
    "Team Name",
    "Registration Date",
    "Main Participant Name",
    "Main Participant Email",
    "Main Participant Phone",
    "Main Participant Roll No",
    "Main Participant Course",
    "Main Participant Year",
    "Main Participant College",
    "College ID URL",
    "Team Members",
    "Query",
]

WORKSHOP_HEADERS = [
    "Name",
    "Email",
    "Phone",
    "Roll No",
    "Course",
    "College",
    "Year",
    "College ID URL",
    "Query",
    "Registration Date",
]


def csv_value(value):
    if value is None or value == "":
        return MISSING
    return str(value)


def public_url(url):
    """Internal file paths become absolute so the sheet is clickable."""
    if not url:
        return None
    if url.startswith("/api/"):
        return settings.REGISTRATION["PUBLIC_BASE_URL"].rstrip("/") + url
    return url


def format_date(value):
    return timezone.localtime(value).strftime("%Y-%m-%d %H:%M:%S")


def format_team_member(member):
    fields = ", ".join(
        str(member.get(key) or MISSING) for key in ("email", "phone", "rollNo", "course", "year", "college")
    )
    return f"{member.get('name') or MISSING} ({fields})"


def college_of(participant):
    college = participant.get("college")
    if college and college.lower() == "other":
        return participant.get("otherCollege") or college
    return college


def techelons_row(reg):
    main = reg.main_participant or {}
    members = " | ".join(format_team_member(m) for m in reg.team_members or [])
    return [
        reg.event.slug,
        reg.event_name,
        reg.team_name,
        format_date(reg.registration_date),
        main.get("name"),
        main.get("email"),
        main.get("phone"),
        main.get("rollNo"),
        main.get("course"),
        main.get("year"),
        college_of(main),
        public_url(reg.college_id_url),
        members,
        reg.query,
    ]


def workshop_row(reg):
    main = reg.main_participant or {}
    return [
        main.get("name"),
        main.get("email"),
        main.get("phone"),
        main.get("rollNo"),
        main.get("course"),
        college_of(main),
        main.get("year"),
        public_url(reg.college_id_url),
        reg.query,
        format_date(reg.registration_date),
    ]


EXPORTS = {
    Event.KIND_TECHELONS: (TECHELONS_HEADERS, techelons_row),
    Event.KIND_WORKSHOP: (WORKSHOP_HEADERS, workshop_row),
}


def write_registrations_csv(stream, registrations, kind):
    """Write header + one row per registration to ``stream``. Returns the row count."""
    headers, to_row = EXPORTS[kind]
    writer = csv.writer(stream)
    writer.writerow(headers)

    count = 0
    for reg in registrations:
        writer.writerow([csv_value(value) for value in to_row(reg)])
        count += 1
    return count
