# websters-backend/events/relay.py
"""
File relay: identity proofs -> durable storage -> stable URL.

Two sinks:
- DatabaseSink: StoredFile blob, served from /api/core/files/<id>/
- DriveSink: Google Drive folder, anyone-with-link view URL

Uploads carry no application-level timeout; the transfer client's own limits
apply.
"""
import io
import logging
import re
from concurrent.futures import ThreadPoolExecutor

import httplib2
from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from core.exceptions import AuthInitializationError, UploadError
from core.files import extension_of, store_blob
from core.google_services import get_service_account
from core.models import StoredFile
from .models import Event
from .submission import MAIN_FILE_FIELD, member_file_fields
from .validators import file_problems

logger = logging.getLogger("websters.events")


def _slugify_part(value, fallback="Unknown", limit=30):
    return re.sub(r"[^a-zA-Z0-9]", "_", value or fallback)[:limit]


def build_filename(upload, prefix, owner, event_name):
    """
    ``<prefix>_<name>_<college>_<event>_<timestamp>.<ext>``

    Name and college are reduced to [A-Za-z0-9_] and cut at 30 characters;
    the timestamp keeps millisecond precision.
    """
    stamp = timezone.now().isoformat(timespec="milliseconds")
    stamp = re.sub(r"[:.+]", "-", stamp)
    ext = extension_of(getattr(upload, "name", "")) or "bin"
    return (
        f"{prefix}_{_slugify_part(owner.get('name'))}_{_slugify_part(owner.get('college'))}_"
        f"{_slugify_part(event_name, 'Unknown-Event', limit=60)}_{stamp}.{ext}"
    )


def _read(upload):
    if hasattr(upload, "seek"):
        upload.seek(0)
    return upload.read()


# -----------------------------
# SINKS
# -----------------------------
class DatabaseSink:
    name = Event.SINK_DATABASE
    # Writes go through the request's DB connection
    concurrent = False

    def store(self, upload, filename):
        try:
            stored = store_blob(
                _read(upload),
                filename=filename,
                original_name=getattr(upload, "name", filename),
                content_type=getattr(upload, "content_type", ""),
                section=StoredFile.SECTION_REGISTRATIONS,
            )
        except DatabaseError as e:
            raise UploadError(f"Failed to store {filename}", details={"phase": "upload", "reason": str(e)}) from e
        return stored.path


class DriveSink:
    name = Event.SINK_DRIVE
    concurrent = True

    def __init__(self, service_account=None, folder_id=None):
        self.service_account = service_account or get_service_account()
        self.folder_id = folder_id if folder_id is not None else settings.GOOGLE_DRIVE_FOLDER_ID

    def store(self, upload, filename):
        if not self.folder_id:
            raise AuthInitializationError(
                "Missing required environment variables: GOOGLE_DRIVE_FOLDER_ID",
                missing=True,
                details={"phase": "upload", "missing": ["GOOGLE_DRIVE_FOLDER_ID"]},
            )

        content_type = getattr(upload, "content_type", "") or "application/octet-stream"
        media = MediaIoBaseUpload(io.BytesIO(_read(upload)), mimetype=content_type, resumable=False)

        try:
            drive = self.service_account.drive()
            created = drive.files().create(
                body={"name": filename, "parents": [self.folder_id]},
                media_body=media,
                fields="id, webViewLink",
                supportsAllDrives=True,
            ).execute()
            drive.permissions().create(
                fileId=created["id"],
                body={"type": "anyone", "role": "reader"},
                supportsAllDrives=True,
            ).execute()
        except HttpError as e:
            raise UploadError(
                f"Drive rejected {filename}",
                details={"phase": "upload", "status": e.resp.status},
            ) from e
        except (GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
            raise UploadError(f"Failed to upload {filename}", details={"phase": "upload", "reason": str(e)}) from e

        return created.get("webViewLink") or f"https://drive.google.com/file/d/{created['id']}/view"


def sink_for(event):
    if event.file_sink == Event.SINK_DRIVE:
        return DriveSink()
    return DatabaseSink()


# -----------------------------
# RELAY
# -----------------------------
class FileRelay:
    def __init__(self, event, sink=None):
        self.event = event
        self.sink = sink or sink_for(event)

    def relay(self, upload, prefix, owner, required=False):
        """
        Store one file; returns its URL, or None when an optional file is absent.

        Size and type are checked again here since the relay can run outside
        the request that validated them (e.g. a retried task).
        """
        if upload is None:
            if required:
                raise UploadError("College ID is required", field=prefix, details={"phase": "upload", "field": prefix})
            return None

        problems = file_problems(upload)
        if problems:
            raise UploadError("; ".join(problems), field=prefix, details={"phase": "upload", "field": prefix})

        filename = build_filename(upload, prefix, owner, self.event.name)
        url = self.sink.store(upload, filename)
        logger.info(f"Relayed {prefix} to {self.sink.name}: {filename}")
        return url

    def relay_registration(self, record, required=True):
        """
        Relay the main participant's proof and every member's.

        Returns ``(main_url, member_urls, failed)``. A failure on the main file
        raises UploadError once every transfer has finished; member failures are
        logged and reported in ``failed``.
        """
        main = record["mainParticipant"]
        members = record.get("teamMembers") or []
        files = record["files"]
        member_files = list(files.get("members") or [])
        member_files += [None] * (len(members) - len(member_files))

        jobs = [(MAIN_FILE_FIELD, files.get("main"), main, required)]
        for field, member, upload in zip(member_file_fields(files, len(members)), members, member_files):
            jobs.append((field, upload, member, False))

        outcomes = self._run(jobs)

        main_url, main_error = outcomes[0]
        if main_error is not None:
            logger.error(f"Main participant upload failed for {main.get('email')}: {main_error.message}")
            raise main_error

        member_urls, failed = [], []
        for (prefix, _, member, _), (url, error) in zip(jobs[1:], outcomes[1:]):
            if error is not None:
                logger.warning(f"Team member upload failed ({prefix}, {member.get('email')}): {error.message}")
                failed.append({"field": prefix, "email": member.get("email"), "error": error.message})
            member_urls.append(url or "")
        return main_url or "", member_urls, failed

    def _attempt(self, job):
        prefix, upload, owner, required = job
        try:
            return self.relay(upload, prefix, owner, required=required), None
        except UploadError as e:
            return None, e

    def _run(self, jobs):
        if not self.sink.concurrent or len(jobs) == 1:
            return [self._attempt(job) for job in jobs]
        with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix="relay") as pool:
            return list(pool.map(self._attempt, jobs))
