# core/files.py
import logging
import secrets
import time

from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth

from .models import StoredFile

logger = logging.getLogger("websters.core")

CONTENT_UPLOAD_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "pdf")


def extension_of(name: str) -> str:
    if "." not in (name or ""):
        return ""
    return name.rsplit(".", 1)[-1].lower()


def unique_upload_name(original_name: str) -> str:
    """<millis>-<random hex>.<ext>, for content uploads that carry no owner."""
    ext = extension_of(original_name)
    stem = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"
    return f"{stem}.{ext}" if ext else stem


def store_blob(data: bytes, *, filename: str, original_name: str, content_type: str,
               section: str = StoredFile.SECTION_GENERAL) -> StoredFile:
    stored = StoredFile.objects.create(
        filename=filename,
        original_name=original_name or filename,
        content_type=content_type or "application/octet-stream",
        section=section or StoredFile.SECTION_GENERAL,
        size=len(data),
        data=data,
    )
    logger.info(f"Stored file {stored.filename} ({stored.size} bytes) in section '{stored.section}'")
    return stored


def file_stats(months: int = 12) -> dict:
    sections = (
        StoredFile.objects.values("section")
        .annotate(count=Count("id"))
        .order_by("-count")
    )

    types = {}
    for content_type in StoredFile.objects.values_list("content_type", flat=True):
        kind = content_type.split("/", 1)[1] if "/" in content_type else content_type
        types[kind] = types.get(kind, 0) + 1

    monthly = (
        StoredFile.objects.annotate(month=TruncMonth("created_at"))
        .values("month")
        .annotate(count=Count("id"), total_size=Sum("size"))
        .order_by("-month")[:months]
    )

    return {
        "totalCount": StoredFile.objects.count(),
        "sections": [{"section": row["section"], "count": row["count"]} for row in sections],
        "fileTypes": [
            {"type": kind, "count": count}
            for kind, count in sorted(types.items(), key=lambda item: item[1], reverse=True)
        ],
        "monthlyUploads": [
            {
                "year": row["month"].year,
                "month": row["month"].month,
                "count": row["count"],
                "totalSize": row["total_size"] or 0,
                "averageSize": (row["total_size"] or 0) / row["count"] if row["count"] else 0,
            }
            for row in monthly
        ],
    }
