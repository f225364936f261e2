"""
Rate limiting configuration.

Applies per-route and per-blueprint limits using Flask-Limiter.  The Limiter
instance is created in servicedesk/__init__.py with no default limits; this
module applies the limits per route category.

Usage:
    from servicedesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

ENDPOINT_LIMITS = {
    "auth.login": "10/minute",
}

BLUEPRINT_LIMITS = {
    "webhook": "60/minute",
    "upload": "30/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits (per remote IP).

        - Login:            10/minute  (credential guessing)
        - Orders webhook:   60/minute
        - Uploads:          30/minute
        - Health probes:    exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint, limit in ENDPOINT_LIMITS.items():
        view = app.view_functions.get(endpoint)
        if view:
            limiter.limit(limit)(view)

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: %s",
        ", ".join(f"{name}={limit}" for name, limit in {**ENDPOINT_LIMITS, **BLUEPRINT_LIMITS}.items()),
    )
