"""
Core package — cross-cutting concerns.

Modules:
    config     — environment variables & settings
    logging    — structured JSON logging
    errors     — exception hierarchy & handlers
    middleware — request ids & timing
    health     — health check aggregation
"""
