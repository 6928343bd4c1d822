"""
Role-based authorization for requests the gateway already accepted.
Trust boundary: signature verification happens at the gateway on protected routes.
This module parses claims WITHOUT verifying them and enforces required roles.
Never use parse_forwarded_claims on a path the gateway does not enforce.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.config import ROLE_ADMIN, ROLE_USER, ROLES_CLAIM

logger = logging.getLogger(__name__)


class AuthorizationFailure(Exception):
    """Rendered as {"error": error, ...extra} with status_code by the app's exception handler."""

    status_code = 500
    error = "Authorization failure"

    def body(self) -> dict:
        return {"error": self.error}


class MissingTokenError(AuthorizationFailure):
    status_code = 401
    error = "Missing bearer token"


class MalformedClaimsError(AuthorizationFailure):
    """Token shape is wrong (server-side problem), as opposed to a permissions problem."""

    status_code = 500
    error = "Malformed claims"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def body(self) -> dict:
        return {"error": self.error, "reason": self.reason}


class MissingRoleError(AuthorizationFailure):
    status_code = 403

    def __init__(self, role: str):
        super().__init__(role)
        self.role = role
        self.error = f"Missing role: {role}"


@dataclass(frozen=True)
class AuthenticatedClaims:
    subject: str | None
    roles: frozenset[str]
    issued_at: datetime | None
    raw: dict[str, Any] = field(repr=False)


def _lookup(claims: dict[str, Any], path: str) -> Any:
    """Follow a dotted claim path; raises KeyError when any segment is absent."""
    value: Any = claims
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            raise KeyError(path)
        value = value[part]
    return value


def extract_roles(claims: dict[str, Any], claim: str = ROLES_CLAIM) -> frozenset[str]:
    """
    Roles are exactly the JSON array at `claim`. Absent -> MalformedClaimsError;
    present but empty -> empty set (a later role check fails with 403, not 500).
    """
    try:
        value = _lookup(claims, claim)
    except KeyError:
        raise MalformedClaimsError(f"roles claim '{claim}' missing") from None
    if not isinstance(value, list) or not all(isinstance(r, str) for r in value):
        raise MalformedClaimsError(f"roles claim '{claim}' is not an array of strings")
    return frozenset(value)


def parse_forwarded_claims(token: str, *, roles_claim: str = ROLES_CLAIM) -> AuthenticatedClaims:
    """
    Decode the payload of a bearer token the gateway has ALREADY verified.
    Caller guarantees upstream signature verification; this does not verify
    signature, expiry, audience or issuer.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise MalformedClaimsError(f"token payload could not be decoded: {e}") from e

    subject = payload.get("sub")
    if subject is not None and not isinstance(subject, str):
        raise MalformedClaimsError("'sub' is not a string")

    iat = payload.get("iat")
    issued_at = None
    if iat is not None:
        if isinstance(iat, bool) or not isinstance(iat, (int, float)):
            raise MalformedClaimsError("'iat' is not a numeric timestamp")
        try:
            issued_at = datetime.fromtimestamp(iat, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise MalformedClaimsError("'iat' is out of range") from e

    return AuthenticatedClaims(
        subject=subject,
        roles=extract_roles(payload, roles_claim),
        issued_at=issued_at,
        raw=payload,
    )


def check_role(claims: AuthenticatedClaims, role: str) -> AuthenticatedClaims:
    """Exact, case-sensitive membership. Raises MissingRoleError."""
    if role not in claims.roles:
        raise MissingRoleError(role)
    return claims


security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Extract Bearer token. Only reachable without one if the gateway is misconfigured."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise MissingTokenError()
    return credentials.credentials


def get_claims(
    token: Annotated[str, Depends(get_bearer_token)],
) -> AuthenticatedClaims:
    """Dependency: forwarded bearer token -> parsed (unverified) claims."""
    try:
        return parse_forwarded_claims(token)
    except MalformedClaimsError as e:
        logger.warning("Rejecting forwarded token: %s", e.reason)
        raise


def require_role(required: str):
    """Dependency factory: require the given role in the forwarded claims."""

    def _check(claims: Annotated[AuthenticatedClaims, Depends(get_claims)]) -> AuthenticatedClaims:
        return check_role(claims, required)

    return Depends(_check)


# Convenience dependencies for /profile, /user and /admin
RequireIdentity = Depends(get_claims)
RequireUser = require_role(ROLE_USER)
RequireAdmin = require_role(ROLE_ADMIN)
