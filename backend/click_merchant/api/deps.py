"""
FastAPI dependencies shared by the routers.
"""
from fastapi import Request

from ..services.callback_service import CallbackHandler


def get_callback_handler(request: Request) -> CallbackHandler:
    """Return the CallbackHandler built during application startup."""
    return request.app.state.callback_handler
