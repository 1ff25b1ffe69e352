# core/tokens.py
"""
Registration tokens.

A token is base64(email). It is an opaque identifier the client keeps so it can
re-fetch its confirmation page; it is NOT signed and must never be treated as
an auth credential.

Older tokens (and admin session cookies) used ``email|timestamp|nonce``;
``resolve`` accepts both shapes and only ever returns the email segment.
"""
import base64
import binascii
import re

TOKEN_DELIMITER = "|"

# Same shape the registration form accepts
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._%+-]*@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


class InvalidToken(ValueError):
    """Token could not be decoded to an email address."""


def issue(email: str) -> str:
    return base64.b64encode(email.strip().encode("utf-8")).decode("ascii")


def resolve(token: str) -> str:
    if not token:
        raise InvalidToken("Token is required")

    raw = token.strip()
    # tokens travel in query strings: accept url-safe alphabet and stripped padding
    raw = raw.replace("-", "+").replace("_", "/").replace(" ", "+")
    raw += "=" * (-len(raw) % 4)

    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidToken("Token is not valid base64") from exc

    email = decoded.split(TOKEN_DELIMITER, 1)[0].strip()
    if not EMAIL_PATTERN.match(email):
        raise InvalidToken("Token does not encode an email address")
    return email
