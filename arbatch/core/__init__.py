"""Application wiring: component construction, lifespan, Sentry."""
