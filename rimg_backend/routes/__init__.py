"""
HTTP routes for the random image server.
"""
from .core import SERVICES_KEY
from .registry import cors_middleware, register_all_routes

__all__ = ["SERVICES_KEY", "cors_middleware", "register_all_routes"]
