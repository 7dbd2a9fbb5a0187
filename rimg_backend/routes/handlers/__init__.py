"""
Route handlers.
"""
from .health import register_health_routes
from .images import register_image_routes

__all__ = [
    "register_health_routes",
    "register_image_routes",
]
