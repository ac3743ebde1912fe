"""
Ordered fallback chain  (Strategy Pattern)
==========================================

``try_in_order([primary, secondary], payload)`` runs each strategy in turn
and stops at the first success.  Strategies are awaited one after another,
so a fallback only starts after the previous tier's failure has been
observed; the chain depth is the length of the list and never grows.

Only the exception types listed in ``recover`` count as a tier failure.
Anything else propagates immediately: a unit-normalisation error, for
instance, is fatal to the calculation and must not silently turn into a
degraded result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    run: Callable[[Any], Awaitable[T]]


@dataclass(frozen=True)
class Attempt:
    strategy: str
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FallbackSuccess(Generic[T]):
    value: T
    strategy: str
    attempts: tuple[Attempt, ...] = ()

    @property
    def fell_back(self) -> bool:
        return len(self.attempts) > 1


@dataclass(frozen=True)
class TerminalFailure:
    attempts: tuple[Attempt, ...] = ()
    errors: tuple[BaseException, ...] = field(default=(), repr=False)

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.errors[-1] if self.errors else None


FallbackOutcome = Union[FallbackSuccess[T], TerminalFailure]


async def try_in_order(
    strategies: Sequence[Strategy[T]],
    payload: Any,
    *,
    recover: tuple[type[BaseException], ...] = (Exception,),
    on_failure: Optional[Callable[[Strategy[T], BaseException], None]] = None,
) -> FallbackOutcome:
    """Return the first successful strategy result, or a ``TerminalFailure``."""
    attempts: list[Attempt] = []
    errors: list[BaseException] = []

    for strategy in strategies:
        try:
            value = await strategy.run(payload)
        except recover as exc:
            logger.warning("Strategy %r failed: %s", strategy.name, exc)
            attempts.append(Attempt(strategy.name, str(exc) or type(exc).__name__))
            errors.append(exc)
            if on_failure is not None:
                on_failure(strategy, exc)
            continue

        attempts.append(Attempt(strategy.name))
        return FallbackSuccess(value=value, strategy=strategy.name, attempts=tuple(attempts))

    return TerminalFailure(attempts=tuple(attempts), errors=tuple(errors))
