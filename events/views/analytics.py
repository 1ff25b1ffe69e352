from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAdminUser
from rest_framework.authentication import SessionAuthentication, BasicAuthentication
from rest_framework_simplejwt.authentication import JWTAuthentication

from core.files import file_stats
from events.analytics import get_registration_analytics


class RegistrationAnalyticsView(APIView):
    """GET /api/events/admin/analytics/ - dashboard numbers, file stats included."""
    authentication_classes = [JWTAuthentication, SessionAuthentication, BasicAuthentication]
    permission_classes = [IsAdminUser]

    def get(self, request):
        data = get_registration_analytics()
        data["files"] = file_stats()
        return Response(data)
