"""Ordered fallback strategies.

Several stages try a list of increasingly conservative ffmpeg invocations
and accept the first one that works. ``run_with_fallbacks`` captures that
shape: strategies are tried in order, each failure is recorded, and the
first success short-circuits the rest.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from lofi_video.exceptions import LofiVideoError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Strategy(Generic[T]):
    """A named attempt."""

    name: str
    run: Callable[[], T]


@dataclass
class FallbackOutcome(Generic[T]):
    """Result of the first successful strategy plus the failures before it."""

    value: T
    strategy: str
    failures: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return bool(self.failures)


class StrategiesExhausted(Exception):
    """Raised when every strategy failed."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = failures
        summary = "; ".join(f"{name}: {exc}" for name, exc in failures)
        super().__init__(f"All {len(failures)} strategies failed ({summary})")


def run_with_fallbacks(
    strategies: list[Strategy[T]],
    *,
    stage: str = "",
    recoverable: tuple[type[Exception], ...] = (LofiVideoError, OSError),
) -> FallbackOutcome[T]:
    """Try ``strategies`` in order and return the first success.

    Only exceptions listed in ``recoverable`` move on to the next strategy;
    anything else propagates immediately.

    Raises:
        StrategiesExhausted: if every strategy raised a recoverable error
    """
    if not strategies:
        raise ValueError("At least one strategy is required")

    failures: list[tuple[str, Exception]] = []
    for index, strategy in enumerate(strategies):
        try:
            value = strategy.run()
        except recoverable as e:
            failures.append((strategy.name, e))
            remaining = len(strategies) - index - 1
            if remaining:
                logger.warning(
                    f"[{stage or 'FALLBACK'}] {strategy.name} failed ({e}), "
                    f"trying {strategies[index + 1].name}..."
                )
            else:
                logger.error(f"[{stage or 'FALLBACK'}] {strategy.name} failed ({e}), no strategies left")
            continue
        if failures:
            logger.info(f"[{stage or 'FALLBACK'}] {strategy.name} succeeded after {len(failures)} failure(s)")
        return FallbackOutcome(value=value, strategy=strategy.name, failures=failures)

    raise StrategiesExhausted(failures)
