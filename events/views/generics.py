from rest_framework.response import Response
from rest_framework import status

from core.exceptions import EventNotFound, ValidationError
from events.models import Event


def api_error(message: str, status_code=status.HTTP_400_BAD_REQUEST):
    """
    Small helper to standardize error responses across the events app.
    Always returns: {"success": false, "error": "<message>"} with the given status code.
    """
    return Response({"success": False, "error": message}, status=status_code)


def get_event_or_404(event_id):
    try:
        return Event.objects.get(slug=event_id)
    except Event.DoesNotExist:
        raise EventNotFound()


def get_workshop_event():
    """The workshop currently taking registrations, else the most recent one."""
    workshops = Event.objects.filter(kind=Event.KIND_WORKSHOP).order_by("-created_at")
    event = workshops.filter(registration_status=Event.STATUS_OPEN).first() or workshops.first()
    if event is None:
        raise EventNotFound("Workshop not found")
    return event


def kind_param(request, required=False, default=None):
    """Validated ?kind= query parameter (techelons | workshop)."""
    kind = request.query_params.get("kind") or default
    if kind is None:
        if required:
            raise ValidationError([{"field": "kind", "reason": "kind is required"}])
        return None
    if kind not in dict(Event.KIND_CHOICES):
        raise ValidationError([{"field": "kind", "reason": f"Unknown registration kind: {kind}"}])
    return kind
