from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome of a best-effort call"""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome; ``reason`` is meant for logs and fallback reasoning"""
    reason: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
