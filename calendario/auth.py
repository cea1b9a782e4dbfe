"""
Client Milestone Calendar
Acting-user identity.

Every audit row names who made the change and from which subdepartment.
Resolution order:

    1. Bearer JWT (HS256, JWT_SECRET_KEY or SECRET_KEY):
         username       ← numeross → username → sub
         subdepartment  ← codSubDepar
    2. X-User / X-SubDepartment headers (trusted reverse proxy)
    3. "usuario" with no subdepartment

An invalid or expired token is ignored (logged) and resolution falls
through to the headers; the audit trail still gets a name.
"""

import logging

import jwt
from flask import current_app, g, has_request_context, request

from calendario.services.calendar_types import ActingUser

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_USERNAME = "usuario"

_USERNAME_CLAIMS = ("numeross", "username", "sub")


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def bearer_token() -> str | None:
    """Raw token from the Authorization header, or None."""
    if not has_request_context():
        return None
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip() or None


def decode_token(token: str) -> dict | None:
    """Decode and verify *token*; None when invalid or expired."""
    try:
        return jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Expired JWT ignored for audit identity")
    except jwt.InvalidTokenError as exc:
        logger.warning("Invalid JWT ignored for audit identity: %s", exc)
    return None


def identity_from_claims(claims: dict) -> ActingUser | None:
    username = next(
        (str(claims[key]) for key in _USERNAME_CLAIMS if claims.get(key)),
        None,
    )
    if not username:
        return None
    sub = claims.get("codSubDepar")
    return ActingUser(username=username, subdepartment_code=str(sub) if sub else None)


def get_acting_user_identity() -> ActingUser:
    """Resolve the acting user for the current request (cached on ``g``)."""
    if not has_request_context():
        return ActingUser(username=DEFAULT_USERNAME)

    cached = getattr(g, "acting_user", None)
    if cached is not None:
        return cached

    user = None
    token = bearer_token()
    if token:
        claims = decode_token(token)
        if claims:
            user = identity_from_claims(claims)

    if user is None:
        header_user = request.headers.get("X-User", "").strip()
        header_sub = request.headers.get("X-SubDepartment", "").strip()
        user = ActingUser(
            username=header_user or DEFAULT_USERNAME,
            subdepartment_code=header_sub or None,
        )

    g.acting_user = user
    return user
