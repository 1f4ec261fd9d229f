"""
API router package for PharmAuth.

Contains the FastAPI router modules for verification, batches, code
generation and health.
"""
