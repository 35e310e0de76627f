# ============================================================================
# src/prescription_triage/knowledge/detection.py
# ============================================================================
"""
Condition detection over free-text chat messages.

Word-boundary keyword matching only, so "pain" never fires inside
"painting". Shared by the knowledge matcher (relevance gate, alias
lookup) and the chat orchestrator (whether to compute severity).
"""

import re
from functools import lru_cache
from typing import Callable, List, Mapping, Optional, Pattern, Tuple

from ..constants.conditions import (
    ADVISORY_KEYWORDS,
    DEFER_TO_RESPONDER,
    DISEASE_KEYWORDS,
    SYMPTOM_ALIASES,
)
from ..constants.severity_scores import SEVERITY_SCORES


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> Pattern:
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


def contains_keyword(text: str, keyword: str) -> bool:
    return _keyword_pattern(keyword).search(text) is not None


def _longest_first(table: Mapping[str, str]) -> List[Tuple[str, str]]:
    return sorted(table.items(), key=lambda item: (-len(item[0]), item[0]))


def has_advisory_intent(query: str) -> bool:
    return any(contains_keyword(query, word) for word in ADVISORY_KEYWORDS)


def mentions_condition(query: str) -> bool:
    return any(contains_keyword(query, word) for word in DISEASE_KEYWORDS)


def is_relevant(query: str) -> bool:
    """Knowledge lookups are only worth doing for advice requests or named conditions."""
    return has_advisory_intent(query) or mentions_condition(query)


def alias_hits(query: str) -> List[Tuple[str, str]]:
    """All (alias, condition) pairs found in the query, longest alias first."""
    return [
        (alias, condition)
        for alias, condition in _longest_first(SYMPTOM_ALIASES)
        if contains_keyword(query, alias)
    ]


def lookup_alias(query: str) -> Optional[str]:
    """
    Condition named by the longest matching symptom alias.

    May return DEFER_TO_RESPONDER; callers decide what that means.
    """
    hits = alias_hits(query)
    return hits[0][1] if hits else None


class ConditionDetector:
    """
    Decides which single condition a chat message is about.

    Alias hits win over plain disease keywords. When several aliases fire
    ("stroke, chest pain and cannot breathe"), the most severe condition is
    chosen, then the longest alias. The defer sentinel is ignored here so
    broad mentions like "cancer" still reach the disease keyword table.

    Args:
        normalize: Optional callable mapping a detected name to the
            knowledge base spelling (returns None when unknown)
    """

    def __init__(self, normalize: Optional[Callable[[str], Optional[str]]] = None):
        self.normalize = normalize

    def detect(self, query: str) -> Optional[str]:
        if not query or not query.strip():
            return None

        candidates = [
            (alias, condition) for alias, condition in alias_hits(query)
            if condition != DEFER_TO_RESPONDER
        ]
        if not candidates:
            candidates = [
                (keyword, condition)
                for keyword, condition in _longest_first(DISEASE_KEYWORDS)
                if contains_keyword(query, keyword)
            ]
        if not candidates:
            return None

        _, condition = max(
            candidates,
            key=lambda item: (SEVERITY_SCORES.get(item[1].lower(), 0.0), len(item[0])),
        )

        if self.normalize is not None:
            return self.normalize(condition) or condition
        return condition
