"""
MODULE OVERVIEW:
Pluggable strategies for the processor's "work" step and its outcome.

WHAT IS HAPPENING HERE:
The processor never calls `random` or `asyncio.sleep` itself. It asks a
WorkSimulator to do the work and an OutcomePolicy to decide success. Production
wires the random variants from settings; tests wire the deterministic ones, and
a real delivery backend would just be another WorkSimulator.
"""
import asyncio
import random
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from notify_shared.models import EntradaEnvelope


class WorkSimulator(ABC):
    @abstractmethod
    async def run(self, envelope: EntradaEnvelope) -> None:
        """Perform (or pretend to perform) the delivery work for one message."""


class RandomDelaySimulator(WorkSimulator):
    """Sleeps for a uniformly drawn duration in [min_delay_s, max_delay_s]."""

    def __init__(
        self,
        min_delay_s: float,
        max_delay_s: float,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_delay_s < 0 or max_delay_s < min_delay_s:
            raise ValueError(f"invalid delay range [{min_delay_s}, {max_delay_s}]")
        self.min_delay_s = min_delay_s
        self.max_delay_s = max_delay_s
        self.rng = rng or random.Random()
        self.sleep = sleep

    async def run(self, envelope: EntradaEnvelope) -> None:
        await self.sleep(self.rng.uniform(self.min_delay_s, self.max_delay_s))


class InstantSimulator(WorkSimulator):
    async def run(self, envelope: EntradaEnvelope) -> None:
        await asyncio.sleep(0)


class OutcomePolicy(ABC):
    @abstractmethod
    def succeeded(self, envelope: EntradaEnvelope) -> bool:
        ...


class ProbabilityPolicy(OutcomePolicy):
    """Fails with probability `failure_rate`."""

    def __init__(self, failure_rate: float, rng: Optional[random.Random] = None):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def succeeded(self, envelope: EntradaEnvelope) -> bool:
        return self.rng.random() >= self.failure_rate


class AlwaysSucceed(OutcomePolicy):
    def succeeded(self, envelope: EntradaEnvelope) -> bool:
        return True


class AlwaysFail(OutcomePolicy):
    def succeeded(self, envelope: EntradaEnvelope) -> bool:
        return False
