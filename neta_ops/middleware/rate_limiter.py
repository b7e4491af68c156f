"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in neta_ops/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from neta_ops.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def actor_rate_limit_key():
    """Rate limit key: authenticated user if known, else remote IP."""
    actor = getattr(g, "actor", None)
    if actor is not None and actor.user_id:
        return f"user:{actor.user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, else per remote IP):
        - Lifecycle / asset writes:  60/minute
        - Review reads:              200/minute
        - Health check:              exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for bp_name in ("reports", "assets", "notifications"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=actor_rate_limit_key)(bp)

    bp = app.blueprints.get("reviews")
    if bp:
        limiter.limit(READ_LIMIT, key_func=actor_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: write=%s read=%s", WRITE_LIMIT, READ_LIMIT)
