"""
JWT Service: bearer token verification and issuance.

Algorithm: HS256

Member token payload:
{
    "sub" | "userId": <member_id>,
    "handle": <handle>,
    "roles": ["copilot", "administrator", ...],
    "iat": <issued_at>,
    "exp": <expires_at>
}

Machine token payload:
{
    "sub": "<client_id>@clients",
    "gty": "client-credentials",
    "scope": "read:review write:review",
    ...
}

Identity claims may also be namespaced (``https://example.com/userId``);
``claim()`` matches either the bare name or any key ending in ``/<name>``.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.core.actor import Actor

ALGORITHM = "HS256"
DEFAULT_EXPIRES = 3600


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def issue_token(claims: dict, expires_in: int = DEFAULT_EXPIRES) -> str:
    """Sign ``claims`` into a short-lived token (used by tooling and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "jti": str(uuid.uuid4()),
    }
    payload.update(claims)
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry.

    Raises:
        jwt.ExpiredSignatureError: token expired
        jwt.InvalidTokenError: any other verification failure
    """
    return jwt.decode(
        token,
        _get_secret(),
        algorithms=[ALGORITHM],
        options={"verify_aud": False},
    )


def claim(payload: dict, name: str):
    if name in payload:
        return payload[name]
    suffix = "/" + name
    for key, value in payload.items():
        if key.endswith(suffix):
            return value
    return None


def _as_list(value) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(v for v in value.replace(",", " ").split() if v)
    return tuple(str(v) for v in value)


def actor_from_claims(payload: dict) -> Actor:
    """Translate verified claims into an Actor."""
    member_id = claim(payload, "userId")
    roles = _as_list(claim(payload, "roles"))
    scopes = _as_list(payload.get("scope") or payload.get("scopes"))
    is_machine = payload.get("gty") == "client-credentials" or (
        member_id is None and bool(scopes)
    )
    if member_id is None and not is_machine:
        member_id = payload.get("sub")

    admin_roles = {r.lower() for r in current_app.config.get("ADMIN_ROLES", ())}
    return Actor(
        member_id=str(member_id) if member_id is not None else None,
        handle=claim(payload, "handle"),
        roles=roles,
        scopes=scopes,
        is_machine=is_machine,
        is_admin=any(r.lower() in admin_roles for r in roles),
        claims=payload,
    )
