"""Pacing and retry helpers applied between browser actions."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type, TypeVar

from .models import AutomationSettings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DelayPolicy:
    """Policy describing the artificial pause between page interactions."""

    min_delay_ms: int = 0
    max_delay_ms: int = 0
    randomize: bool = True
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_settings(cls, settings: AutomationSettings, **kwargs) -> "DelayPolicy":
        return cls(
            min_delay_ms=settings.min_delay_ms,
            max_delay_ms=max(settings.max_delay_ms, settings.min_delay_ms),
            randomize=settings.randomize_delays,
            **kwargs,
        )

    def next_delay_ms(self) -> int:
        if self.randomize and self.max_delay_ms > self.min_delay_ms:
            return self.rng.randint(self.min_delay_ms, self.max_delay_ms)
        return self.min_delay_ms

    def wait(self) -> int:
        delay_ms = self.next_delay_ms()
        if delay_ms > 0:
            self.sleep(delay_ms / 1000.0)
        return delay_ms


@dataclass
class RetryPolicy:
    """Run an action up to ``attempts`` times, pausing ``backoff_ms`` between tries."""

    attempts: int = 1
    backoff_ms: int = 0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    give_up_on: Tuple[Type[BaseException], ...] = ()

    @classmethod
    def from_settings(cls, settings: AutomationSettings, **kwargs) -> "RetryPolicy":
        return cls(
            attempts=max(settings.retry_attempts + 1, 1),
            backoff_ms=settings.retry_backoff_ms,
            **kwargs,
        )

    def run(self, action: Callable[[], T], *, description: Optional[str] = None) -> T:
        label = description or getattr(action, "__name__", "action")
        for attempt in range(self.attempts):
            try:
                return action()
            except Exception as exc:
                if isinstance(exc, self.give_up_on) or attempt == self.attempts - 1:
                    raise
                LOGGER.warning("%s failed on attempt %s/%s: %s", label, attempt + 1, self.attempts, exc)
                if self.backoff_ms > 0:
                    self.sleep(self.backoff_ms / 1000.0)
        raise RuntimeError("RetryPolicy requires at least one attempt")  # pragma: no cover


__all__ = ["DelayPolicy", "RetryPolicy"]
