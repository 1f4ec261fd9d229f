"""
Messaging utilities for PharmAuth.

This package provides the async Redis client wrapper shared by the
verification engine (cache, counters, decision events) and the API gateway.
"""
