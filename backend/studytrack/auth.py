"""Caller identity and the FastAPI security dependency.

Identity is issued by an external provider as a signed JWT whose `sub`
claim is the caller's stable external identifier; `name`, `email` and
`picture` carry the profile fields. This module turns the bearer token
into an explicit `AuthContext` once per request. Services receive that
context as a parameter and resolve the internal user themselves.

A missing, expired or unverifiable token yields an anonymous context
rather than an HTTP error, so every "not signed in" case surfaces as the
same `Unauthenticated` failure from the identity resolver.
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .errors import Unauthenticated

logger = logging.getLogger("studytrack.auth")
bearer_scheme = HTTPBearer(auto_error=False)
webhook_scheme = APIKeyHeader(name="X-Webhook-Secret", auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller as seen by the service layer."""
    external_id: Optional[str] = None
    name: str = ""
    email: str = ""
    avatar_url: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.external_id)

    @classmethod
    def anonymous(cls) -> "AuthContext":
        return cls()


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify an identity token.

    Returns the claims on success or `None` when the token is expired or
    invalid.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("identity token expired")
    except jwt.InvalidTokenError as exc:
        logger.info("identity token rejected: %s", exc)
    return None


def context_from_claims(claims: Optional[dict]) -> AuthContext:
    if not claims or not claims.get("sub"):
        return AuthContext.anonymous()
    return AuthContext(
        external_id=str(claims["sub"]),
        name=claims.get("name") or "",
        email=claims.get("email") or "",
        avatar_url=claims.get("picture"),
    )


def encode_identity_token(external_id: str, name: str = "", email: str = "",
                          avatar_url: Optional[str] = None, expires_hours: int = 24) -> str:
    """Sign a development identity token with the configured secret.

    Production tokens come from the identity provider; this helper keeps
    scripts and tests independent of it.
    """
    expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours)
    payload = {"sub": external_id, "name": name, "email": email, "exp": int(expire.timestamp())}
    if avatar_url:
        payload["picture"] = avatar_url
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def get_auth_context(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> AuthContext:
    """FastAPI dependency that builds the caller's `AuthContext`."""
    if credentials is None:
        return AuthContext.anonymous()
    return context_from_claims(decode_token(credentials.credentials))


def require_webhook_secret(secret: Optional[str] = Security(webhook_scheme)) -> None:
    """FastAPI dependency guarding the identity provider's provisioning webhook.

    The caller must present `X-Webhook-Secret` matching `WEBHOOK_SECRET`;
    with no secret configured the webhook rejects every call.
    """
    expected = settings.WEBHOOK_SECRET
    if not expected or not secret or not hmac.compare_digest(secret.encode(), expected.encode()):
        logger.info("provisioning webhook rejected")
        raise Unauthenticated("invalid webhook secret")
