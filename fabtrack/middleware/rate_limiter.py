"""
Per-blueprint rate limits using Flask-Limiter.

The Limiter instance is created in fabtrack/__init__.py with no default
limits; this module attaches limits by route family.

Usage:
    from fabtrack.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

# Blueprints that mostly mutate state
_WRITE_BLUEPRINTS = ("project_bp", "approval_bp", "history_log_bp", "user_bp")
# Blueprints polled by the dashboard
_READ_BLUEPRINTS = ("notification_bp",)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Project / approval / log / user routes: 60/minute
        - Notification polling:                   200/minute
        - Health check:                           exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in _WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in _READ_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured: write=%s read=%s", WRITE_LIMIT, READ_LIMIT)
