"""
Health Interfaces Layer
=======================

Interface adapters (controllers) for the campus health module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from campus_health.health.interfaces.controllers import health_router

__all__ = ["health_router"]
