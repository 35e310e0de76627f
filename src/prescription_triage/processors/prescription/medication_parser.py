# ============================================================================
# src/prescription_triage/processors/prescription/medication_parser.py
# ============================================================================
"""
Medication Entity Parser

Pulls medication name / dosage / timing triples out of transcribed
prescription text with three heuristic tiers:

1. Dosage-anchored:      "Paracetamol 500mg"
2. Abbreviation-anchored: "Tab. Crocin", "Azithral OD"
3. Capitalisation:        "Dolo", last resort on noisy OCR

Each tier is a pure function of the text. The first tier that yields
anything wins. Parsing never raises.
"""

import logging
import re
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ...constants.medication_terms import (
    DEFAULT_DOSAGE,
    DOSAGE_FORMS,
    DOSAGE_UNITS,
    FREQUENCY_CODES,
    FREQUENCY_WORDS,
    HONORIFICS,
    MAX_NAME_LENGTH,
    MAX_NAME_WORDS,
    MIN_NAME_LENGTH,
    STOP_WORDS,
    STRUCTURAL_WORDS,
    TIMING_KEYWORDS,
)
from ...core.models import MedicationEntity, Timing


logger = logging.getLogger(__name__)

# (name, dosage or None, source line)
Candidate = Tuple[str, Optional[str], str]

_WORD = r"[A-Za-z][A-Za-z0-9'\-]*"
_UNIT = "|".join(DOSAGE_UNITS)
_FORM = "|".join(sorted(DOSAGE_FORMS, key=len, reverse=True))
_FREQUENCY = r"(?:\b(?:{codes})\b|\b(?i:{words})\b)".format(
    codes="|".join(FREQUENCY_CODES), words="|".join(FREQUENCY_WORDS)
)

DOSAGE_PATTERN = re.compile(rf"(?<![\d.])(\d+(?:\.\d+)?)[ \t]*({_UNIT})\b", re.IGNORECASE)
FORM_PATTERN = re.compile(
    rf"\b(?:{_FORM})\b\.?[ \t]*({_WORD}(?:[ \t]+{_WORD})*)[ \t]*"
    rf"(?:(\d+(?:\.\d+)?)[ \t]*({_UNIT})\b)?",
    re.IGNORECASE,
)
FREQUENCY_PATTERN = re.compile(_FREQUENCY)
WORD_PATTERN = re.compile(_WORD)
AMOUNT_PATTERN = re.compile(r"\d+(?:\.\d+)?")
CAPITALISED_RUN_PATTERN = re.compile(r"\b[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*\b")
SCHEDULE_PATTERN = re.compile(r"(?<![\d-])\d-\d-\d(?![\d-])")

HONORIFIC_LOOKBACK = 24


def _lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if len(line.strip()) >= MIN_NAME_LENGTH]


def _is_stop(word: str) -> bool:
    return word.strip(".,:;").lower() in STOP_WORDS


def _is_form(word: str) -> bool:
    return word.strip(".,:;").lower() in DOSAGE_FORMS


def _valid_name(name: str) -> bool:
    return (
        MIN_NAME_LENGTH <= len(name) < MAX_NAME_LENGTH
        and name.lower() not in STOP_WORDS
        and not name.isdigit()
    )


def _trailing_name(prefix: str) -> Optional[str]:
    """Name from the words that end right before a dosage or frequency code.

    Walks back from the end of ``prefix`` and stops at the first token that
    is not a plain word, at a stop word or dosage form, or once enough words
    are collected. Each token is looked at once, so noisy lines stay linear.
    """
    words: List[str] = []
    for token in reversed(prefix.split()):
        if not WORD_PATTERN.fullmatch(token) or _is_stop(token) or _is_form(token):
            break
        words.append(token)
        if len(words) == MAX_NAME_WORDS:
            break
    name = " ".join(reversed(words)).strip(" .,:;-")
    return name if name and _valid_name(name) else None


def _leading_name(run: str) -> Optional[str]:
    """Name from a word run that starts right after a dosage form."""
    words = []
    for word in run.split():
        if _is_stop(word) or _is_form(word) or word in FREQUENCY_CODES:
            break
        words.append(word)
        if len(words) == MAX_NAME_WORDS:
            break
    name = " ".join(words).strip(" .,:;-")
    return name if name and _valid_name(name) else None


def _format_dosage(amount: str, unit: str) -> str:
    unit = "IU" if unit.lower() == "iu" else unit.lower()
    return f"{amount} {unit}"


def dosage_anchored(text: str) -> List[Candidate]:
    """Tier 1: <name words> <number> <unit>."""
    found = []
    for line in _lines(text):
        cursor = 0
        for match in DOSAGE_PATTERN.finditer(line):
            name = _trailing_name(line[cursor:match.start()])
            cursor = match.end()
            if name:
                found.append((name, _format_dosage(match.group(1), match.group(2)), line))
    return found


def abbreviation_anchored(text: str) -> List[Candidate]:
    """Tier 2: dosage-form prefix or trailing frequency code."""
    found = []
    for line in _lines(text):
        hits = []
        for match in FORM_PATTERN.finditer(line):
            name = _leading_name(match.group(1))
            if not name:
                continue
            dosage = _format_dosage(match.group(2), match.group(3)) if match.group(2) else None
            hits.append((match.start(1), name, dosage))

        # Only the text between two frequency codes can name the drug
        cursor = 0
        for match in FREQUENCY_PATTERN.finditer(line):
            words = line[cursor:match.start()].split()
            cursor = match.end()
            if words and AMOUNT_PATTERN.fullmatch(words[-1]):
                words.pop()
            name = _trailing_name(" ".join(words))
            if name:
                hits.append((match.start(), name, None))

        for _, name, dosage in sorted(hits, key=lambda hit: hit[0]):
            found.append((name, dosage, line))
    return found


def capitalised_runs(text: str) -> List[Candidate]:
    """Tier 3: capitalised word runs minus headings, labels and people."""
    found = []
    for line in _lines(text):
        for match in CAPITALISED_RUN_PATTERN.finditer(line):
            # Split the run wherever a structural word sits
            segment: List[str] = []
            after_honorific = _preceded_by_honorific(line, match.start())
            for word in match.group(0).split() + [""]:
                lowered = word.lower()
                if word and lowered not in STRUCTURAL_WORDS and lowered not in HONORIFICS:
                    segment.append(word)
                    continue
                if segment and not after_honorific:
                    name = " ".join(segment)
                    if _valid_name(name):
                        found.append((name, None, line))
                segment = []
                after_honorific = lowered in HONORIFICS
    return found


def _preceded_by_honorific(line: str, start: int) -> bool:
    # Honorifics are short words, a few characters of look-back cover them
    window_start = max(0, start - HONORIFIC_LOOKBACK)
    before = line[window_start:start].rstrip(" .:\t").split()
    if not before or (len(before) == 1 and window_start > 0):
        return False
    return before[-1].strip(".,:").lower() in HONORIFICS


def timing_for_line(line: str) -> Timing:
    lowered = line.lower()
    for timing, keywords in TIMING_KEYWORDS:
        if any(re.search(rf"\b{keyword}\b", lowered) for keyword in keywords):
            return Timing(timing)
    if SCHEDULE_PATTERN.search(line):
        return Timing.AS_PER_SCHEDULE
    return Timing.AS_DIRECTED


class MedicationEntityParser:
    """
    Three-tier cascade over prescription text.

    Args:
        max_medications: Cap on entities returned for one document
        tiers: Override the tier functions (tests)
    """

    def __init__(
        self,
        max_medications: int = 10,
        tiers: Optional[Sequence[Callable[[str], List[Candidate]]]] = None,
    ):
        self.max_medications = max_medications
        self.tiers = tuple(tiers) if tiers is not None else (
            dosage_anchored,
            abbreviation_anchored,
            capitalised_runs,
        )

    def parse(self, text: str) -> List[MedicationEntity]:
        """
        Extract medications in document order.

        Args:
            text: Raw transcribed prescription text

        Returns:
            Deduplicated medication entities, possibly empty
        """
        if not text or not text.strip():
            return []

        for tier in self.tiers:
            entities = self._build(tier(text))
            if entities:
                logger.debug(f"{tier.__name__} matched {len(entities)} medications")
                return entities

        return []

    def _build(self, candidates: Iterable[Candidate]) -> List[MedicationEntity]:
        entities: List[MedicationEntity] = []
        seen = set()
        for name, dosage, line in candidates:
            key = name.lower()
            if key in seen:
                continue
            seen.add(key)
            entities.append(MedicationEntity(
                name=name,
                dosage=dosage or DEFAULT_DOSAGE,
                timing=timing_for_line(line),
            ))
            if len(entities) >= self.max_medications:
                break
        return entities
