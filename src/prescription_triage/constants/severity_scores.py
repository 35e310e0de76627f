# ============================================================================
# src/prescription_triage/constants/severity_scores.py
# ============================================================================
"""
Severity Table
- Reference severity (0-10) per canonical condition
- Score -> level breakpoints
"""

from types import MappingProxyType


SEVERITY_SCORES = MappingProxyType({
    "stroke": 9.5,
    "heart disease": 8.5,
    "respiratory distress": 8.5,
    "meningitis": 8.0,
    "cancer": 8.0,
    "pneumonia": 7.0,
    "tuberculosis": 7.0,
    "kidney disease": 6.5,
    "diabetes": 6.0,
    "hypertension": 6.0,
    "asthma": 6.0,
    "depression": 5.5,
    "glaucoma": 5.5,
    "electrolyte imbalance": 5.0,
    "herniated disc": 5.0,
    "high cholesterol": 4.5,
    "thyroid disorder": 4.5,
    "migraine": 4.5,
    "anxiety": 4.5,
    "hernia": 4.5,
    "lymphadenitis": 4.0,
    "bronchitis": 4.0,
    "gastroenteritis": 4.0,
    "dehydration": 4.0,
    "arthritis": 4.0,
    "infection": 4.0,
    "influenza": 3.5,
    "fever": 3.5,
    "raynaud's disease": 3.5,
    "pain": 3.0,
    "acid reflux": 3.0,
    "insomnia": 3.0,
    "allergy": 2.5,
    "eczema": 2.5,
    "pharyngitis": 2.5,
    "common cold": 1.5,
})

# (lower bound inclusive, level); scanned from the top
SEVERITY_BREAKPOINTS = (
    (8.0, "Critical"),
    (6.0, "High"),
    (3.0, "Moderate"),
    (0.0, "Low"),
)

MIN_SEVERITY = 0.0
MAX_SEVERITY = 10.0
