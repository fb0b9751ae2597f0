"""
Result types for explicit success/failure tracking across vote sources.

A votes sync talks to several independent collectors. Each one reports a
Result so a failing source is recorded instead of silently dropped.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ProcessingError:
    """
    A failure reported by one vote source.

    Attributes:
        source: Vote source that failed ("snapshot", "onchain-core", ...)
        message: Human-readable error description
        context: Extra context such as the voter address
        exception: Original exception if available
    """

    source: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None

    def __str__(self) -> str:
        return f"{self.source}: {self.message}"


@dataclass
class Result(Generic[T]):
    success: bool
    data: Optional[T] = None
    errors: List[ProcessingError] = field(default_factory=list)

    @classmethod
    def ok(cls, data: T) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail_with_message(
        cls,
        source: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        exception: Optional[Exception] = None,
    ) -> "Result[T]":
        return cls(
            success=False,
            errors=[
                ProcessingError(
                    source=source,
                    message=message,
                    context=context or {},
                    exception=exception,
                )
            ],
        )

    def has_errors(self) -> bool:
        return bool(self.errors)
