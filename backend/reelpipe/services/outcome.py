"""Success/failure value returned by every generative adapter call.

Adapters never raise for provider failures; they return an Outcome and the
calling step decides whether the failure is scene-local or step-fatal.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from reelpipe.errors import AdapterError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "Outcome[T]":
        return cls(error=error or "Unknown error")

    def unwrap(self) -> T:
        """Return the value or raise AdapterError carrying the message."""
        if self.error is not None:
            raise AdapterError(self.error)
        return self.value
