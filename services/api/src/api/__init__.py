"""
PharmAuth REST API Gateway.

FastAPI-based HTTP server exposing code verification, offline sync,
batch management and code generation on top of the verification engine.
"""
