"""API routes."""

from leadhunter_core.api.routes import hunting, leads, notifications

__all__ = ["hunting", "leads", "notifications"]
