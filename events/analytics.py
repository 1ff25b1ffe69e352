from collections import Counter

from django.db.models import Count
from django.utils import timezone

from .models import Event, Registration

UNKNOWN = "Unknown"


def _participant_breakdown(registrations):
    """Counts keyed by the main participant's details only."""
    by_day, by_year, by_course, by_college = Counter(), Counter(), Counter(), Counter()
    team_sizes = Counter()

    for reg in registrations:
        main = reg.main_participant or {}
        day = timezone.localtime(reg.registration_date).date().isoformat() if reg.registration_date else UNKNOWN
        by_day[day] += 1
        by_year[main.get("year") or UNKNOWN] += 1
        by_course[main.get("course") or UNKNOWN] += 1
        by_college[main.get("college") or UNKNOWN] += 1
        size = 1 + len(reg.team_members or []) if reg.is_team_event else 1
        team_sizes[str(size)] += 1

    return {
        "totalRegistrations": sum(by_day.values()),
        "registrationsByDay": dict(by_day),
        "registrationsByYear": dict(by_year),
        "registrationsByCourse": dict(by_course),
        "registrationsByCollege": dict(by_college),
        "teamSizeDistribution": dict(team_sizes),
    }


def get_registration_analytics():
    """
    Dashboard numbers for the admin panel: events by category, registrations
    per event, and per-kind breakdowns by day/year/course/college/team size.
    """
    events = Event.objects.all()

    by_category = Counter(event.category or "Uncategorized" for event in events)

    per_event = (
        Registration.objects.values("event_name")
        .annotate(count=Count("id"))
        .order_by("-count")
    )

    stats = {
        "events": {
            "totalEvents": len(events),
            "openEvents": sum(1 for event in events if event.is_open),
            "eventsByCategory": dict(by_category),
            "registrationsByEvent": {row["event_name"] or UNKNOWN: row["count"] for row in per_event},
        },
        "registrations": {},
    }

    for kind, _ in Event.KIND_CHOICES:
        registrations = Registration.objects.filter(event__kind=kind).only(
            "registration_date", "main_participant", "team_members", "is_team_event"
        )
        stats["registrations"][kind] = _participant_breakdown(registrations)

    return stats
