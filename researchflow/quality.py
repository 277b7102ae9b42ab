"""Sufficiency checks applied to step output."""

from __future__ import annotations

from typing import Any, Callable, Optional

from .constants import DEFAULT_MIN_CONTEXTS
from .contracts import QualityAssessment


class QualityGate:
    """Decide whether a result is good enough to continue with.

    By default the measure is ``len(result)`` and the result passes when it
    reaches ``threshold``.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_MIN_CONTEXTS,
        measure: Callable[[Any], float] = len,
        label: str = "items",
    ) -> None:
        self.threshold = threshold
        self.measure = measure
        self.label = label

    def evaluate(self, result: Any, threshold: Optional[float] = None) -> QualityAssessment:
        threshold = self.threshold if threshold is None else threshold
        observed = self.measure(result)
        if observed >= threshold:
            reason = f"Found {observed:g} {self.label}"
            return QualityAssessment(
                passed=True, measure=observed, threshold=threshold, reason=reason
            )
        reason = (
            f"Insufficient research context: found {observed:g} {self.label}, "
            f"need at least {threshold:g}"
        )
        return QualityAssessment(
            passed=False, measure=observed, threshold=threshold, reason=reason
        )
