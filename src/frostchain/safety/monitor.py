"""Breach monitor: classifies temperature readings against the threshold.

Pure computation. No side effects, no persistence, no audit entries.
The service layer handles all of that; this engine only classifies.

Rule: a reading breaches iff reading > threshold. Values at or below the
threshold are safe. There is no hysteresis and no averaging: each
verdict depends only on the reading in hand.

Series rule (sensor ingestion): readings are processed in order, the
first breach latches the batch compromised, and every later entry in
the same series is tagged BREACH whether or not its own reading breached.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from frostchain.persistence.event_log import EntryKind
from frostchain.policy.resolver import PolicyResolver


@dataclass(frozen=True)
class SeriesVerdict:
    """Outcome of classifying a sequence of readings.

    kinds[i] is the entry tag; breaches[i] says whether reading i itself
    crossed the threshold. They differ once the latch is set.
    """
    kinds: list[EntryKind] = field(default_factory=list)
    breaches: list[bool] = field(default_factory=list)
    first_breach_index: Optional[int] = None
    compromised: bool = False

    @property
    def any_breach(self) -> bool:
        return self.first_breach_index is not None


class BreachMonitor:
    """Classifies readings against the configured safety threshold.

    Usage:
        monitor = BreachMonitor(resolver)
        monitor.is_breach(-17)            # True at the shipped -18 threshold
        verdict = monitor.classify_series([-20, -15, -21], already_compromised=False)
        verdict.kinds                     # [OBSERVATION, BREACH, BREACH]
    """

    def __init__(self, resolver: PolicyResolver) -> None:
        self._threshold = resolver.safety_threshold()

    @property
    def threshold(self) -> float:
        return self._threshold

    def is_breach(self, reading: float) -> bool:
        return reading > self._threshold

    def classify(self, reading: float) -> EntryKind:
        """Entry kind for a single recorded observation."""
        return EntryKind.BREACH if self.is_breach(reading) else EntryKind.OBSERVATION

    def classify_series(
        self,
        readings: Sequence[float],
        already_compromised: bool,
    ) -> SeriesVerdict:
        """Tag each reading with the batch's compromised state at that point.

        A batch that was already compromised before the series tags every
        entry BREACH.
        """
        latched = already_compromised
        first_breach: Optional[int] = None
        kinds: list[EntryKind] = []
        breaches: list[bool] = []
        for i, reading in enumerate(readings):
            breached = self.is_breach(reading)
            if breached:
                latched = True
                if first_breach is None:
                    first_breach = i
            breaches.append(breached)
            kinds.append(EntryKind.BREACH if latched else EntryKind.OBSERVATION)
        return SeriesVerdict(
            kinds=kinds,
            breaches=breaches,
            first_breach_index=first_breach,
            compromised=latched,
        )
