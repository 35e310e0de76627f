# ============================================================================
# src/prescription_triage/triage/severity.py
# ============================================================================
"""
Severity Triage

Condition -> score (0-10) -> level, plus the emergency decision that
gates UI escalation.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from ..constants.severity_scores import (
    MAX_SEVERITY,
    MIN_SEVERITY,
    SEVERITY_BREAKPOINTS,
    SEVERITY_SCORES,
)
from ..core.config import get_config
from ..core.models import SeverityAssessment, SeverityLevel


logger = logging.getLogger(__name__)


def level_for_score(score: float) -> SeverityLevel:
    """Map a 0-10 score onto the fixed breakpoints."""
    for lower_bound, level in SEVERITY_BREAKPOINTS:
        if score >= lower_bound:
            return SeverityLevel(level)
    return SeverityLevel.LOW


class SeverityTriage:
    """
    Args:
        config: Overrides merged over get_config()
        scores: Severity table (condition lower-cased -> score)
        fallback_lookup: Consulted for conditions missing from the table,
            e.g. KnowledgeStore.severity_for
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        scores: Mapping[str, float] = SEVERITY_SCORES,
        fallback_lookup: Optional[Callable[[str], Optional[float]]] = None,
    ):
        self.config = {**get_config(), **(config or {})}
        self.scores = scores
        self.fallback_lookup = fallback_lookup
        self.emergency_threshold = float(self.config.get('emergency_threshold', 7.0))
        self.unknown_severity = float(self.config.get('unknown_condition_severity', 5.0))

    def score_for(self, condition: str) -> float:
        score = self.scores.get(condition.strip().lower())
        if score is None and self.fallback_lookup is not None:
            score = self.fallback_lookup(condition)
            # Unscored knowledge rows are stored as 0; treat them as unknown
            if score is not None and score <= 0:
                score = None
        if score is None:
            logger.info(f"No severity score for '{condition}', using {self.unknown_severity}")
            score = self.unknown_severity
        return score

    def assess(self, condition: Optional[str]) -> SeverityAssessment:
        """
        Assess a detected condition.

        Args:
            condition: Canonical condition name, or None when nothing was detected

        Returns:
            SeverityAssessment with score rounded to one decimal
        """
        if condition is None:
            return SeverityAssessment(score=0.0, level=SeverityLevel.LOW, is_emergency=False, condition=None)

        score = min(max(float(self.score_for(condition)), MIN_SEVERITY), MAX_SEVERITY)
        score = round(score, 1)
        assessment = SeverityAssessment(
            score=score,
            level=level_for_score(score),
            is_emergency=score >= self.emergency_threshold,
            condition=condition,
        )

        if assessment.is_emergency:
            logger.warning(f"Emergency severity for '{condition}': {score} ({assessment.level.value})")
        return assessment
