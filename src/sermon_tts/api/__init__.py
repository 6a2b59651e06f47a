"""
FastAPI REST layer.

    - routes.py: Generation, status, sweep, health and metrics endpoints
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
