"""Outcome container returned by long-running host operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar


T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(slots=True, frozen=True)
class Result(Generic[T, E]):
    """Either the value an operation produced or the exception that stopped it.

    A successful result may legitimately carry ``None`` (for example when there
    was nothing to do), so success is decided by the absence of an error.
    """

    value: Optional[T] = None
    error: Optional[E] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T, E]":
        return cls(value=value)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self.error is None

    def is_err(self) -> bool:
        return self.error is not None

    def unwrap(self) -> Optional[T]:
        """Return the value, re-raising the stored error on failure."""

        if self.error is not None:
            raise self.error
        return self.value


__all__ = ["Result"]
