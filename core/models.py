#  websters-backend/core/models.py
from django.db import models


class StoredFile(models.Model):
    """
    Binary blob kept in the database.

    Used as the file sink for identity proofs when an event is not configured
    for Google Drive, and for arbitrary content uploads from the admin side.
    """
    SECTION_REGISTRATIONS = "registrations"
    SECTION_GENERAL = "general"

    filename = models.CharField(max_length=255, unique=True)
    original_name = models.CharField(max_length=255, blank=True)
    content_type = models.CharField(max_length=100)
    section = models.CharField(max_length=64, default=SECTION_GENERAL, db_index=True)
    size = models.PositiveIntegerField(default=0)
    data = models.BinaryField()
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["section", "created_at"],
                name="storedfile_section_created_idx",
            ),
        ]

    def __str__(self):
        return self.filename

    @property
    def path(self):
        return f"/api/core/files/{self.pk}/"
