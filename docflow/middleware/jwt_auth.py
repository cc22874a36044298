"""
JWT Auth Middleware — parses the bearer token and sets ``g.principal``.

Requests without a valid token simply carry no principal; endpoints that
need one call docflow.auth.current_principal(), which answers 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from docflow.auth import Principal
from docflow.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.principal = None

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
            g.principal = Principal.of(payload["sub"], payload["role"])
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token", extra={"path": path})
        except (pyjwt.InvalidTokenError, KeyError, ValueError):
            logger.warning("Rejected malformed access token", extra={"path": path})
