# core/google_services.py
# Google service-account access for the spreadsheet registry and drive uploads

import logging
from datetime import datetime, timezone

import httplib2
from django.conf import settings
from google.auth.exceptions import GoogleAuthError, TransportError
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp, Request
from googleapiclient.discovery import build

from .exceptions import AuthInitializationError
from .ttl_cache import TTLCache

logger = logging.getLogger("websters.core")

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]

# Re-authorize this many seconds before the access token actually expires
REFRESH_BUFFER = 5 * 60
DEFAULT_TOKEN_LIFETIME = 60 * 60

_BUNDLE_KEY = "service-account"


def missing_credentials():
    """Names of the env vars that are unset or still hold placeholder values."""
    placeholders = getattr(settings, "GOOGLE_PLACEHOLDER_VALUES", ())
    missing = []
    if not settings.GOOGLE_PRIVATE_KEY or settings.GOOGLE_PRIVATE_KEY in placeholders:
        missing.append("GOOGLE_PRIVATE_KEY")
    if not settings.GOOGLE_CLIENT_EMAIL or settings.GOOGLE_CLIENT_EMAIL in placeholders:
        missing.append("GOOGLE_CLIENT_EMAIL")
    return missing


class GoogleServiceAccount:
    """
    Authorized once, reused across requests until close to expiry.

    The credential and the API clients derived from it live in one cache entry,
    so a re-authorization rebuilds the clients as well.
    """

    def __init__(self, cache=None, timeout=None):
        self.cache = cache or TTLCache(ttl=DEFAULT_TOKEN_LIFETIME, name="google-service-account")
        self.timeout = timeout

    # -----------------------------
    # credentials
    # -----------------------------
    def _authorize(self):
        missing = missing_credentials()
        if missing:
            raise AuthInitializationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing=True,
                details={"phase": "auth", "missing": missing},
            )

        try:
            credentials = service_account.Credentials.from_service_account_info(
                {
                    "type": "service_account",
                    "client_email": settings.GOOGLE_CLIENT_EMAIL,
                    "private_key": settings.GOOGLE_PRIVATE_KEY,
                    "token_uri": "https://oauth2.googleapis.com/token",
                },
                scopes=SCOPES,
            )
            credentials.refresh(Request(httplib2.Http(timeout=settings.GOOGLE_API_TIMEOUT)))
        except (ValueError, GoogleAuthError) as e:
            logger.error(f"Google service account authorization failed: {e}")
            missing = isinstance(e, TransportError)
            raise AuthInitializationError(
                "Could not reach Google to authorize" if missing else None,
                missing=missing,
                details={"phase": "auth"},
            ) from e

        logger.info("Google service account authorized")
        return credentials

    def _ttl_for(self, credentials):
        expiry = getattr(credentials, "expiry", None)
        if not expiry:
            return DEFAULT_TOKEN_LIFETIME - REFRESH_BUFFER
        # google-auth stores expiry as naive UTC
        remaining = (expiry.replace(tzinfo=timezone.utc) - datetime.now(timezone.utc)).total_seconds()
        return max(remaining - REFRESH_BUFFER, 0)

    def _bundle(self):
        bundle = self.cache.get(_BUNDLE_KEY)
        if bundle is None:
            credentials = self._authorize()
            bundle = {"credentials": credentials}
            self.cache.set(_BUNDLE_KEY, bundle, ttl=self._ttl_for(credentials))
        return bundle

    def credentials(self):
        return self._bundle()["credentials"]

    def invalidate(self):
        self.cache.invalidate()

    # -----------------------------
    # API clients
    # -----------------------------
    def _client(self, name, api, version, timeout):
        bundle = self._bundle()
        if name not in bundle:
            http = AuthorizedHttp(bundle["credentials"], http=httplib2.Http(timeout=timeout))
            bundle[name] = build(api, version, http=http, cache_discovery=False)
        return bundle[name]

    def sheets(self):
        timeout = self.timeout if self.timeout is not None else settings.GOOGLE_API_TIMEOUT
        return self._client("sheets", "sheets", "v4", timeout)

    def drive(self):
        # uploads rely on the transfer client's own limits
        return self._client("drive", "drive", "v3", None)


_service_account = None


def get_service_account():
    """Process-wide service account (singleton pattern)."""
    global _service_account
    if _service_account is None:
        _service_account = GoogleServiceAccount()
    return _service_account
