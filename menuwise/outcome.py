"""
Explicit fallback outcomes.

Every degradable stage returns either ``Ok(value)`` or
``Degraded(value, reason)``; both carry a usable value. ``chain`` threads a
value through a sequence of steps and stops at the first degradation, and
``attempt`` turns an exception from a primary path into a degraded fallback.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def degraded(self) -> bool:
        return False

    @property
    def reason(self) -> str | None:
        return None


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


Outcome = Union[Ok[T], Degraded[T]]

Step = Callable[[Any], "Ok[Any] | Degraded[Any]"]


def chain(seed: Any, *steps: Step) -> Outcome:
    """
    Feed ``seed`` through ``steps`` in order.

    Each step receives the previous ``Ok`` value. The first ``Degraded``
    short-circuits the chain and is returned as-is.
    """
    current: Outcome = Ok(seed)
    for step in steps:
        current = step(current.value)
        if isinstance(current, Degraded):
            return current
    return current


def attempt(
    primary: Callable[[], T],
    fallback: Callable[[str], T],
    label: str,
) -> Outcome:
    """Run ``primary``; on any exception, log and return ``Degraded(fallback(reason))``."""
    try:
        return Ok(primary())
    except Exception as exc:
        reason = f"{label}: {exc}" if str(exc) else label
        logger.warning("%s failed, using fallback", label, exc_info=True)
        return Degraded(fallback(reason), reason)
