"""
JWT auth middleware: parses the bearer token and sets ``g.actor``.

  Authorization: Bearer <token>    g.actor = Actor(...)
  missing or invalid token         g.actor = None

The middleware never rejects a request itself; the review blueprint
answers 401 when it needs an actor and ``g.actor`` is None.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import actor_from_claims, decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT parsing entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired bearer token", extra={"request_id": getattr(g, "request_id", "")})
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Invalid bearer token: %s", exc,
                        extra={"request_id": getattr(g, "request_id", "")})
            return

        g.actor = actor_from_claims(payload)
