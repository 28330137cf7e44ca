"""
Route registration entry point for the FastAPI application.

Each router module covers one concern; ``register_routes`` wires them all.
"""

from fastapi import FastAPI

from be_better.api.routes import auth, health, user


def register_routes(app: FastAPI) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(user.router)
