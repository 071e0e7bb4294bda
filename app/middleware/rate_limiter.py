"""
Rate limiting configuration.

The Limiter instance is created in app/__init__.py with no default limits;
this module applies per-blueprint limits after the blueprints are registered.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Review endpoints: RATELIMIT_REVIEWS (default 300/minute)
        - Health checks:    exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    reviews_limit = app.config.get("RATELIMIT_REVIEWS", "300/minute")
    bp = app.blueprints.get("reviews")
    if bp:
        limiter.limit(reviews_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: reviews=%s, health exempt", reviews_limit)
