"""Request dependencies for the API routes."""

from fastapi import Request

from ..core.app_context import AppContext


def get_app_context(request: Request) -> AppContext:
    """Return the application context built during startup."""
    return request.app.state.context
