# core/mail.py
"""
Pooled mail transport.

Django opens a fresh SMTP connection per send_mail() call. Registration bursts
(a team of four = four confirmations) would pay the TLS handshake every time,
so connections are pooled:

- at most EMAIL_POOL_SIZE connections checked out at once
- a connection is retired after EMAIL_MAX_MESSAGES_PER_CONNECTION messages
- the whole pool is rebuilt after EMAIL_TRANSPORT_TTL seconds
"""
import logging
import queue
import threading
from contextlib import contextmanager

from django.conf import settings
from django.core.mail import get_connection

from .exceptions import NotificationError
from .ttl_cache import TTLCache

logger = logging.getLogger("websters.core")

SMTP_BACKEND = "django.core.mail.backends.smtp.EmailBackend"


def smtp_credentials_configured() -> bool:
    placeholders = getattr(settings, "EMAIL_PLACEHOLDER_VALUES", ())
    user = settings.EMAIL_HOST_USER
    password = settings.EMAIL_HOST_PASSWORD
    return bool(user and password and user not in placeholders and password not in placeholders)


def resolve_backend():
    """
    Returns (backend_path, test_mode).

    SMTP without usable credentials falls back to the disposable test mailbox
    so the registration flow keeps working outside production.
    """
    backend = settings.EMAIL_BACKEND
    if backend == SMTP_BACKEND and not smtp_credentials_configured():
        logger.warning(
            "Email credentials not configured or using placeholder values. "
            f"Using {settings.EMAIL_FALLBACK_BACKEND} for testing."
        )
        return settings.EMAIL_FALLBACK_BACKEND, True
    return backend, False


class _PooledConnection:
    def __init__(self, connection):
        self.connection = connection
        self.sent = 0


class MailTransportPool:
    def __init__(self, backend=None, size=None, max_messages=None, timeout=None):
        if backend is None:
            backend, self.test_mode = resolve_backend()
        else:
            self.test_mode = False
        self.backend = backend
        self.size = size or settings.EMAIL_POOL_SIZE
        self.max_messages = max_messages or settings.EMAIL_MAX_MESSAGES_PER_CONNECTION
        self.timeout = timeout if timeout is not None else settings.EMAIL_SEND_TIMEOUT
        self._idle = queue.LifoQueue()
        self._slots = threading.BoundedSemaphore(self.size)
        self._closed = False

    def _open(self):
        connection = get_connection(self.backend, fail_silently=False, timeout=self.timeout)
        connection.open()
        return _PooledConnection(connection)

    def _discard(self, pooled):
        try:
            pooled.connection.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing mail connection: {e}")

    @contextmanager
    def connection(self, wait=None):
        """
        Borrow a connection. Blocks up to ``wait`` seconds when all slots are busy.

        A connection that raised while borrowed is closed rather than returned.
        """
        if not self._slots.acquire(timeout=wait if wait is not None else self.timeout):
            raise NotificationError("No mail connection available")
        pooled = None
        try:
            try:
                pooled = self._idle.get_nowait()
            except queue.Empty:
                pooled = self._open()

            try:
                yield pooled.connection
            except Exception:
                self._discard(pooled)
                raise

            pooled.sent += 1
            if self._closed or pooled.sent >= self.max_messages:
                self._discard(pooled)
            else:
                self._idle.put(pooled)
        finally:
            self._slots.release()

    def close(self):
        self._closed = True
        while True:
            try:
                pooled = self._idle.get_nowait()
            except queue.Empty:
                break
            self._discard(pooled)


_POOL_KEY = "pool"
_transport_cache = None
_current_pool = None
_pool_lock = threading.Lock()


def get_transport_cache():
    global _transport_cache
    if _transport_cache is None:
        _transport_cache = TTLCache(ttl=settings.EMAIL_TRANSPORT_TTL, name="mail-transport")
    return _transport_cache


def get_transport_pool(cache=None):
    """Process-wide pool, rebuilt wholesale when its TTL runs out."""
    global _current_pool
    cache = cache or get_transport_cache()
    with _pool_lock:
        pool = cache.get(_POOL_KEY)
        if pool is None:
            pool = MailTransportPool()
            cache.set(_POOL_KEY, pool)
            if _current_pool is not None and _current_pool is not pool:
                _current_pool.close()
            _current_pool = pool
            logger.info(f"Mail transport pool created (backend={pool.backend}, size={pool.size})")
        return pool


def reset_transport_pool():
    global _current_pool
    with _pool_lock:
        if _current_pool is not None:
            _current_pool.close()
            _current_pool = None
        get_transport_cache().invalidate()
