"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance is
created in dealflow/__init__.py with no default limits; this module applies
granular limits per route category.

Usage:
    from dealflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Validation (POST /processes/validate) runs on every kanban drop or cell edit,
# so the process blueprint gets a high limit; admin APIs stay tight.
PROCESS_LIMIT = "600/minute"
ADMIN_WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Process endpoints (incl. validation): 600/minute
        - Schema writes:                        60/minute
        - Health check:                         exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("processes")
    if bp:
        limiter.limit(PROCESS_LIMIT)(bp)

    bp = app.blueprints.get("schema")
    if bp:
        limiter.limit(ADMIN_WRITE_LIMIT, methods=["POST", "PUT", "DELETE"])(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: processes: %s, admin writes: %s",
        PROCESS_LIMIT, ADMIN_WRITE_LIMIT,
    )
