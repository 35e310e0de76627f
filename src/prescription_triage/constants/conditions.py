# ============================================================================
# src/prescription_triage/constants/conditions.py
# ============================================================================
"""
Condition vocabulary for chat triage
- Advisory-intent words (gate for knowledge lookups)
- Disease keywords and the canonical condition each one names
- Curated symptom -> condition aliases
"""

from types import MappingProxyType


# Returned by the alias table when a mention is too broad for a direct
# knowledge record. The generative responder answers these unaided.
DEFER_TO_RESPONDER = "__DEFER_TO_RESPONDER__"

ADVISORY_KEYWORDS = frozenset({
    "suggest", "suggestion", "remedy", "remedies", "recommend",
    "recommendation", "treatment", "treat", "help", "cure", "medicine",
    "medicines", "medication", "advice", "advise", "relief", "manage",
    "prevent", "precaution", "precautions", "home remedy",
})

# keyword -> canonical condition name used for severity and record lookup
DISEASE_KEYWORDS = MappingProxyType({
    "diabetes": "Diabetes",
    "sugar": "Diabetes",
    "hypertension": "Hypertension",
    "blood pressure": "Hypertension",
    "cholesterol": "High Cholesterol",
    "asthma": "Asthma",
    "migraine": "Migraine",
    "headache": "Migraine",
    "fever": "Fever",
    "cold": "Common Cold",
    "flu": "Influenza",
    "cough": "Bronchitis",
    "allergy": "Allergy",
    "pain": "Pain",
    "arthritis": "Arthritis",
    "thyroid": "Thyroid Disorder",
    "heart": "Heart Disease",
    "kidney": "Kidney Disease",
    "bronchitis": "Bronchitis",
    "pharyngitis": "Pharyngitis",
    "meningitis": "Meningitis",
    "tuberculosis": "Tuberculosis",
    "eczema": "Eczema",
    "acid reflux": "Acid Reflux",
    "gastroenteritis": "Gastroenteritis",
    "dehydration": "Dehydration",
    "insomnia": "Insomnia",
    "glaucoma": "Glaucoma",
    "hernia": "Hernia",
    "herniated disc": "Herniated Disc",
    "raynaud": "Raynaud's Disease",
    "lymph": "Lymphadenitis",
    "electrolyte": "Electrolyte Imbalance",
    "infection": "Infection",
    "chest pain": "Heart Disease",
    "stroke": "Stroke",
    "pneumonia": "Pneumonia",
    "cancer": "Cancer",
    "anxiety": "Anxiety",
    "depression": "Depression",
})

# Symptom phrase -> condition. Matched on word boundaries, longest phrase first.
SYMPTOM_ALIASES = MappingProxyType({
    "fever": "Meningitis",
    "chest pain": "Heart Disease",
    "difficulty breathing": "Respiratory Distress",
    "cannot breathe": "Respiratory Distress",
    "cold": "Pharyngitis",
    "cough": "Bronchitis",
    "headache": "Migraine",
    "migraine": "Migraine",
    "pain": "Migraine",
    "reflux": "Acid Reflux",
    "stomach": "Gastroenteritis",
    "water": "Dehydration",
    "sleep": "Insomnia",
    "itching": "Eczema",
    "stroke": "Stroke",
    "heart attack": "Heart Disease",
    "cold hands": "Raynaud's Disease",
    "cold feet": "Raynaud's Disease",
    "raynaud": "Raynaud's Disease",
    "raynauds": "Raynaud's Disease",
    "freezing hands": "Raynaud's Disease",
    "freezing feet": "Raynaud's Disease",
    "cancer": DEFER_TO_RESPONDER,
})
