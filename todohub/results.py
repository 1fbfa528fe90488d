"""Result values returned by every public operation."""
from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Result(BaseModel, Generic[T]):
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(success=True, value=value)

    @classmethod
    def err(cls, error: str) -> Result[T]:
        return cls(success=False, error=error or "unknown error")

    def unwrap(self) -> T:
        if not self.success:
            raise ValueError(self.error or "unwrap() on a failed result")
        return self.value  # type: ignore[return-value]
