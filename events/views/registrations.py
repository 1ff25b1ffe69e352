import logging
import uuid

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.authentication import SessionAuthentication, BasicAuthentication
from rest_framework.pagination import LimitOffsetPagination
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework import status
from django.conf import settings
from django.http import HttpResponse # For CSV export

from core import tokens
from events.exports import write_registrations_csv
from events.models import Event, Festival, Registration
from events.registry import registry_for
from events.serializers import EventSerializer, RegistrationRecordSerializer
from events.submission import parse_submission
from events.workflow import RegistrationWorkflow, ensure_registration_open, whatsapp_link_for
from .generics import api_error, get_event_or_404, get_workshop_event, kind_param

logger = logging.getLogger('websters.events')


def _retry_count(request):
    try:
        return max(int(request.headers.get("X-Retry-Count", 0)), 0)
    except (TypeError, ValueError):
        return 0


# -----------------------------
# PUBLIC REGISTRATION
# -----------------------------
class RegisterEventView(APIView):
    """
    POST /api/events/<eventId>/register/

    Multipart (with college ID files) or JSON. A repeat submission is answered
    with 200 and alreadyRegistered=true, never an error.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "registration"

    default_college = None

    def get_event(self, **kwargs):
        return get_event_or_404(kwargs["event_id"])

    def post(self, request, **kwargs):
        event = self.get_event(**kwargs)
        festival = Festival.load()
        ensure_registration_open(event, festival)

        submission = parse_submission(request.data, request.FILES)
        workflow = RegistrationWorkflow(
            event,
            festival,
            request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12],
            retry_count=_retry_count(request),
            default_college=self.default_college,
        )
        payload = workflow.run(submission)
        return Response(payload, status=status.HTTP_200_OK)


class WorkshopRegisterView(RegisterEventView):
    """POST /api/events/workshop/register/ - college defaults to the host college."""

    def get_event(self, **kwargs):
        return get_workshop_event()

    @property
    def default_college(self):
        return settings.REGISTRATION["DEFAULT_COLLEGE"]


class RegistrationDetailsView(APIView):
    """
    GET /api/events/registration-details/?email=&eventId=
    GET /api/events/registration-details/?token=

    Backs the confirmation page the client reopens with its registration token.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "registration-details"

    def get(self, request):
        token = request.query_params.get("token")
        email = request.query_params.get("email")
        event_id = request.query_params.get("eventId")

        if token:
            try:
                email = tokens.resolve(token)
            except tokens.InvalidToken as e:
                return api_error(str(e), status.HTTP_400_BAD_REQUEST)

        if not email:
            return api_error("Email is required", status.HTTP_400_BAD_REQUEST)

        registrations = Registration.objects.select_related("event").filter(main_email=email.strip().lower())
        if event_id:
            registrations = registrations.filter(event__slug=event_id)

        registration = registrations.first()
        if registration is not None:
            event = registration.event
            record = RegistrationRecordSerializer(registration).data
        else:
            event, record = self._from_sheet(email, event_id)
            if record is None:
                return api_error("Registration not found", status.HTTP_404_NOT_FOUND)

        event_data = EventSerializer(event).data
        event_data["whatsappGroup"] = whatsapp_link_for(event, Festival.load())
        return Response({"registration": record, "event": event_data})

    def _from_sheet(self, email, event_id):
        if not event_id:
            return None, None
        event = Event.objects.filter(slug=event_id, registry_backend=Event.REGISTRY_SHEETS).first()
        if event is None:
            return None, None
        return event, registry_for(event).lookup(email)


# -----------------------------
# ADMIN
# -----------------------------
def _admin_queryset(request):
    registrations = Registration.objects.select_related("event").order_by("-registration_date")
    kind = kind_param(request)
    if kind:
        registrations = registrations.filter(event__kind=kind)
    event_id = request.query_params.get("eventId")
    if event_id:
        registrations = registrations.filter(event__slug=event_id)
    return registrations


class AdminRegistrationsView(APIView):
    """
    GET    /api/events/admin/registrations/?kind=&eventId=[&limit=&offset=]
    DELETE /api/events/admin/registrations/?id=
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAdminUser]

    def get(self, request):
        registrations = _admin_queryset(request)

        paginator = LimitOffsetPagination()
        page = paginator.paginate_queryset(registrations, request, view=self)
        if page is not None:
            return paginator.get_paginated_response(RegistrationRecordSerializer(page, many=True).data)

        serializer = RegistrationRecordSerializer(registrations, many=True)
        return Response({"registrations": serializer.data})

    def delete(self, request):
        reg_id = request.query_params.get("id")
        if not reg_id:
            return api_error("Registration ID is required", status.HTTP_400_BAD_REQUEST)

        try:
            reg = Registration.objects.get(pk=int(reg_id))
        except (TypeError, ValueError):
            return api_error("Invalid registration ID format", status.HTTP_400_BAD_REQUEST)
        except Registration.DoesNotExist:
            return api_error("Registration not found", status.HTTP_404_NOT_FOUND)

        reg.delete()
        logger.info(f"Registration {reg_id} ({reg.main_email}, {reg.event_name}) deleted by {request.user}")
        return Response({"success": True, "message": "Registration deleted successfully"})


class AdminRegistrationFlushView(APIView):
    """DELETE /api/events/admin/registrations/flush/?kind= - irreversible."""
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAdminUser]

    def delete(self, request):
        _, per_model = _admin_queryset(request).delete()
        count = per_model.get(Registration._meta.label, 0)

        logger.warning(f"Flushed {count} registrations (kind={request.query_params.get('kind') or 'all'}) by {request.user}")
        if count == 0:
            return Response({"message": "No registrations found to delete", "count": 0})
        return Response({"message": "All registrations deleted successfully", "count": count})


class AdminRegistrationExportView(APIView):
    """GET /api/events/admin/registrations/export/?kind=techelons|workshop"""
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAdminUser]

    def get(self, request):
        kind = kind_param(request, default=Event.KIND_TECHELONS)
        registrations = _admin_queryset(request)

        response = HttpResponse(
            content_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{kind}-registrations.csv"'},
        )
        count = write_registrations_csv(response, registrations.filter(event__kind=kind), kind)
        logger.info(f"Exported {count} {kind} registrations")
        return response
