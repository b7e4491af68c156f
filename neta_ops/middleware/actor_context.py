"""
Actor Context Middleware — resolves the acting user per request, sets g.actor.

Sources, in priority order:
  1. Supabase access token (Authorization: Bearer <jwt>, HS256)
       sub                  → user_id
       user_metadata.role   → role (folded by permission.resolve_role)
  2. X-User-Id / X-User-Role headers, only when TRUST_ACTOR_HEADERS is on
     (development and tests; never in production)

A missing or invalid token leaves ``g.actor = None``. Views pass the actor to
the services, which raise AuthorizationError for anonymous callers.
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from neta_ops.services.permission import ActorContext, resolve_role

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Paths that skip actor resolution entirely
ACTOR_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def decode_access_token(token: str) -> dict:
    """Verify and decode a Supabase access token.

    Raises:
        jwt.InvalidTokenError (or a subclass) for any bad token.
    """
    secret = current_app.config.get("SUPABASE_JWT_SECRET")
    if not secret:
        raise pyjwt.InvalidTokenError("SUPABASE_JWT_SECRET is not configured")
    audience = current_app.config.get("JWT_AUDIENCE") or None
    return pyjwt.decode(
        token,
        secret,
        algorithms=[ALGORITHM],
        audience=audience,
        options={"require": ["sub", "exp"], "verify_aud": audience is not None},
    )


def actor_from_claims(claims: dict) -> ActorContext:
    user_meta = claims.get("user_metadata") or {}
    app_meta = claims.get("app_metadata") or {}
    raw_role = user_meta.get("role") or app_meta.get("role")
    name = user_meta.get("full_name") or user_meta.get("name") or claims.get("email")
    return ActorContext(user_id=str(claims["sub"]), role=resolve_role(raw_role), name=name)


def _actor_from_headers() -> ActorContext | None:
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        return None
    return ActorContext(
        user_id=user_id,
        role=resolve_role(request.headers.get("X-User-Role")),
        name=request.headers.get("X-User-Name"),
    )


def current_actor() -> ActorContext | None:
    return getattr(g, "actor", None)


def init_actor_middleware(app):
    """Register actor resolution as a before_request hook."""

    @app.before_request
    def _resolve_actor():
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in ACTOR_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
            try:
                g.actor = actor_from_claims(decode_access_token(token))
            except pyjwt.ExpiredSignatureError:
                logger.info("Expired access token", extra={"path": path})
            except pyjwt.InvalidTokenError as exc:
                logger.warning("Rejected access token: %s", exc, extra={"path": path})
            return

        if current_app.config.get("TRUST_ACTOR_HEADERS"):
            g.actor = _actor_from_headers()
