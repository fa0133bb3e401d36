"""Utilities for issuing and validating caller and email-verification JWTs."""

from __future__ import annotations

import time
from typing import Any

import jwt

from loop_schemas import Claims, Role

from ..config import Settings, get_settings
from ..domain.contracts import AuthContext

VERIFY_EMAIL_PURPOSE = "verify_email"


def issue_access_token(
    *, subject: str, claims: Claims, settings: Settings | None = None
) -> tuple[str, int]:
    """Create a signed JWT carrying an account's claims.

    Parameters
    ----------
    subject:
        Account identifier to embed in the token `sub` claim.
    claims:
        The account's current role and chain membership; absent values are omitted.
    settings:
        Overrides the process settings, mainly for tests.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    settings = settings or get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "iat": now,
        "exp": now + expires_in,
        **claims.to_document(),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Decode and verify a caller JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = settings or get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp"]},
    )
    if "purpose" in payload:
        raise jwt.InvalidTokenError("single-purpose tokens cannot authenticate requests")
    return payload


def auth_context_from_payload(payload: dict[str, Any]) -> AuthContext:
    """Build the per-request :class:`AuthContext` from decoded token claims."""
    role_value = payload.get("role")
    try:
        role = Role(role_value) if role_value else None
    except ValueError:
        # unknown roles grant nothing
        role = None
    return AuthContext(account_id=str(payload["sub"]), role=role, chain_id=payload.get("chainId"))


def issue_verification_token(*, uid: str, email: str, settings: Settings | None = None) -> str:
    """Sign a single-purpose token proving ownership of ``email`` for ``uid``."""
    settings = settings or get_settings()
    now = int(time.time())
    payload = {
        "iss": settings.jwt_issuer,
        "sub": uid,
        "email": email,
        "purpose": VERIFY_EMAIL_PURPOSE,
        "iat": now,
        "exp": now + settings.verification_ttl_seconds,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_verification_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Verify a token produced by :func:`issue_verification_token`.

    Raises ``jwt.PyJWTError`` when the signature, issuer, expiry or purpose is wrong.
    """
    settings = settings or get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "email"]},
    )
    if payload.get("purpose") != VERIFY_EMAIL_PURPOSE:
        raise jwt.InvalidTokenError("token was not issued for email verification")
    return payload
