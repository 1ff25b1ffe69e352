from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny

from events.models import Event, Festival
from events.serializers import EventSerializer, FestivalSerializer
from .generics import get_event_or_404, kind_param


class EventListView(APIView):
    """GET /api/events/?kind=techelons|workshop&category="""
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        events = Event.objects.all().order_by("fest_day", "name")
        kind = kind_param(request)
        if kind:
            events = events.filter(kind=kind)
        category = request.query_params.get("category")
        if category:
            events = events.filter(category__iexact=category)
        return Response({"events": EventSerializer(events, many=True).data})


class EventDetailView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request, event_id):
        event = get_event_or_404(event_id)
        return Response({"event": EventSerializer(event).data})


class FestivalInfoView(APIView):
    """GET /api/events/festival-info/"""
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        festival = Festival.load()
        return Response({"festInfo": festival.info, "festival": FestivalSerializer(festival).data})


class DefaultWhatsappView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"defaultWhatsappGroup": Festival.load().default_whatsapp_group})
