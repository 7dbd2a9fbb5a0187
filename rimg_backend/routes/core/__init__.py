"""
Core utilities for route handlers.
"""
from .response import (
    _error_response,
    _json_response,
    _result_error_response,
    safe_error_message,
)
from .services import SERVICES_KEY, _require_services

__all__ = [
    "_json_response",
    "_error_response",
    "_result_error_response",
    "safe_error_message",
    "SERVICES_KEY",
    "_require_services",
]
