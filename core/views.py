import logging
import time
from urllib.parse import quote

from django.conf import settings
from django.db import connections
from django.db.utils import OperationalError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .files import CONTENT_UPLOAD_EXTENSIONS, extension_of, file_stats, store_blob, unique_upload_name
from .models import StoredFile

logger = logging.getLogger("websters.core")


# -----------------------------
# FILES
# -----------------------------
class FileDetailView(APIView):
    """Serves a stored blob. Blobs never change once written, so cache forever."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, file_id):
        stored = get_object_or_404(StoredFile, pk=file_id)

        etag = f'"{stored.pk}"'
        if request.headers.get("If-None-Match") == etag:
            return HttpResponse(status=status.HTTP_304_NOT_MODIFIED)

        response = HttpResponse(bytes(stored.data), content_type=stored.content_type or "application/octet-stream")
        response["Content-Disposition"] = f'inline; filename="{quote(stored.original_name or stored.filename)}"'
        response["Cache-Control"] = "public, max-age=31536000, immutable"
        response["ETag"] = etag
        return response


class FileUploadView(APIView):
    permission_classes = [IsAdminUser]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request):
        upload = request.FILES.get("file")
        if upload is None:
            return Response({"success": False, "error": "No file uploaded"}, status=status.HTTP_400_BAD_REQUEST)

        ext = extension_of(upload.name)
        if ext not in CONTENT_UPLOAD_EXTENSIONS:
            return Response(
                {"success": False, "error": "File type not allowed. Only images and PDFs are supported."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        max_size = settings.REGISTRATION["MAX_UPLOAD_SIZE"]
        if upload.size > max_size:
            return Response(
                {"success": False, "error": f"File must be at most {max_size // (1024 * 1024)}MB"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        stored = store_blob(
            upload.read(),
            filename=unique_upload_name(upload.name),
            original_name=upload.name,
            content_type=upload.content_type,
            section=request.data.get("section") or "misc",
        )
        return Response(
            {
                "success": True,
                "url": stored.path,
                "fileId": stored.pk,
                "filename": stored.original_name,
            },
            status=status.HTTP_201_CREATED,
        )


class FileStatsView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response({"success": True, "stats": file_stats()})


# -----------------------------
# HEALTH
# -----------------------------
class HealthCheckView(APIView):
    """
    Lightweight health endpoint for uptime checks.
    - Checks DB connectivity
    - Returns env and simple latency
    """
    permission_classes = [AllowAny]
    authentication_classes = []  # public endpoint

    def get(self, request, *args, **kwargs):
        start = time.time()

        db_ok = True
        try:
            connections["default"].cursor()
        except OperationalError:
            logger.error("Health check could not reach the database")
            db_ok = False

        duration_ms = int((time.time() - start) * 1000)

        return Response(
            {
                "status": "ok" if db_ok else "degraded",
                "db": db_ok,
                "env": getattr(settings, "ENV", "unknown"),
                "latency_ms": duration_ms,
            }
        )
