"""
Result pattern for error handling without exceptions.
Service methods return Result[T]; route handlers turn them into HTTP responses.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from .types import ErrorCode

T = TypeVar("T")

@dataclass
class Result(Generic[T]):
    """
    Result pattern for safe error handling.

    Usage:
        def pick(index) -> Result[str]:
            if not len(index):
                return Result.Err("NOT_FOUND", "No images found", reason="empty index")
            return Result.Ok("cats/b.png")
    """
    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: str = "OK"  # OK, NOT_FOUND, DIRECTORY_UNREADABLE, SCAN_FAILED, etc.
    meta: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def Ok(data: T, **meta: Any) -> "Result[T]":
        """Create a successful result with data and optional metadata."""
        return Result(ok=True, data=data, code="OK", meta=meta)

    @staticmethod
    def Err(code: ErrorCode | str | Enum, error: str, **meta: Any) -> "Result[T]":
        """Create an error result with code, message, and optional metadata."""
        code_value = code.value if isinstance(code, Enum) else code
        return Result(ok=False, error=error, code=str(code_value), meta=meta)

    @property
    def reason(self) -> str | None:
        """Shortcut for `meta["reason"]` on NOT_FOUND results."""
        value = self.meta.get("reason") if isinstance(self.meta, dict) else None
        return str(value) if value is not None else None
