"""
pa-common: Shared library for PharmAuth.

Provides common data models, configuration management, database connections,
the Redis client wrapper, structured logging, and Prometheus metrics helpers
used by the verification engine and the API gateway.
"""

from pa_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
