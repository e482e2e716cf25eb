"""
JWT Auth Middleware: parses the Bearer token and sets ``g.current_user``.

The engine never looks up the user itself; blueprints pass
``g.current_user`` explicitly into every service call.

    Authorization: Bearer <token>  →  g.current_user = User(...)
    missing / expired / invalid    →  g.current_user = None  (every predicate denies)

Users whose claims break the role's scope invariant (e.g. a
district_engineer without a district) are treated as unauthenticated.
"""

import logging

import jwt as pyjwt
from flask import g, request

from gridfault.services.jwt_service import decode_access_token, user_from_claims

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError:
            logger.info("Invalid access token on %s", path)
            return

        user = user_from_claims(payload)
        problems = user.scope_errors()
        if problems:
            logger.warning("Rejecting token for user=%s: %s", user.id, "; ".join(problems))
            return
        g.current_user = user
