# ============================================================================
# src/prescription_triage/constants/medication_terms.py
# ============================================================================
"""
Vocabulary for heuristic medication extraction
- Dosage units
- Dosage-form abbreviations
- Frequency codes
- Stop words that can never be (part of) a drug name
- Structural words found on prescriptions and reports
"""

DOSAGE_UNITS = ("mg", "ml", "g", "units", "IU")

# Prefixes written before the drug name ("Tab. Crocin", "Syp. Benadryl")
DOSAGE_FORMS = frozenset({
    "tab", "tabs", "tablet", "tablets",
    "syp", "syrup",
    "cap", "caps", "capsule", "capsules",
    "inj", "injection",
    "drops", "liquid",
})

# Upper-case only; "od" inside prose is not a frequency
FREQUENCY_CODES = ("BD", "OD", "TDS", "QID")
FREQUENCY_WORDS = ("once", "twice", "thrice")

# Directional / temporal words. Compared case-insensitively.
STOP_WORDS = frozenset({
    "for", "take", "after", "before", "meals", "meal", "daily", "twice",
    "thrice", "once", "times", "and", "or", "type", "diabetes", "day", "days",
    "hours", "hour", "with", "at", "per", "every", "morning", "afternoon",
    "evening", "night", "bedtime", "the", "a", "of", "in", "to", "week",
    "weeks", "month", "months", "food", "water", "empty", "stomach",
    "bd", "od", "tds", "qid", "sos", "dose", "dosage",
})

# Headings and labels that tier 3 must not mistake for drug names
STRUCTURAL_WORDS = frozenset({
    "dr", "rx", "type", "diabetes", "dosage", "frequency", "take", "twice",
    "daily", "after", "meals", "instructions", "patient", "name", "date",
    "age", "sex", "address", "clinic", "hospital", "signature", "diagnosis",
    "prescription", "tab", "cap", "syp", "inj", "morning", "night",
    "evening", "afternoon", "before", "with", "for", "the", "and",
})

# A capitalised run directly after one of these is a person, not a drug
HONORIFICS = frozenset({"dr", "mr", "mrs", "ms", "miss", "prof", "patient", "name"})

# Timing keywords checked against the whole line, in this order
TIMING_KEYWORDS = (
    ("Morning", ("morning", "breakfast")),
    ("Afternoon", ("afternoon", "lunch")),
    ("Night", ("evening", "dinner", "night", "bedtime")),
)

DEFAULT_DOSAGE = "As prescribed"

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 100

# Longest name kept from a word run preceding a dosage
MAX_NAME_WORDS = 3
