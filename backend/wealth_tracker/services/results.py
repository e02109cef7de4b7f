"""Explicit outcome of a single provider call."""
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar
import logging

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A provider answered with a non-200 status or an unusable payload."""


@dataclass
class FetchResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def empty(cls, error: Optional[str] = None) -> "FetchResult[T]":
        return cls(ok=False, error=error)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default


async def guarded(label: str, call: Awaitable[T]) -> FetchResult[T]:
    """Await a provider call and convert any failure into an empty result."""
    try:
        value = await call
    except ProviderError as e:
        logger.warning(f"{label}: {e}")
        return FetchResult.empty(str(e))
    except Exception as e:
        logger.error(f"{label} failed: {e}")
        return FetchResult.empty(str(e))
    if value is None:
        return FetchResult.empty("no data")
    return FetchResult.success(value)
