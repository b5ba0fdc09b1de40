"""API routes package."""

from app.api.routes import (
    admin,
    applications,
    chat,
    projects,
)

__all__ = [
    "admin",
    "applications",
    "chat",
    "projects",
]
