"""
FastAPI REST API Layer for speechmagic.

This package defines all HTTP endpoints:
    - routes.py: Generation, download and history endpoints (/api/tts/...)
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection (settings, service, caller)
"""
