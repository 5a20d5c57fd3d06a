"""Specialty normalization onto the closed vocabulary used for doctor lookup."""

from __future__ import annotations

EMERGENCY = "EMERGENCY"
GENERAL_PRACTICE = "General Practice"
DERMATOLOGY = "Dermatology"
CARDIOLOGY = "Cardiology"
GASTROENTEROLOGY = "Gastroenterology"
NEUROLOGY = "Neurology"
ORTHOPEDICS = "Orthopedics"

SPECIALTIES = (
    GENERAL_PRACTICE,
    DERMATOLOGY,
    CARDIOLOGY,
    GASTROENTEROLOGY,
    NEUROLOGY,
    ORTHOPEDICS,
)

# First match wins; checked after the "emergency" keyword.
_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("general", "family", "primary care", "internal medicine", "gp"), GENERAL_PRACTICE),
    (("derma", "skin"), DERMATOLOGY),
    (("cardio", "heart"), CARDIOLOGY),
    (("gastro", "digestive", "hepato"), GASTROENTEROLOGY),
    (("neuro",), NEUROLOGY),
    (("ortho", "musculoskeletal", "sports medicine"), ORTHOPEDICS),
]


def normalize_specialty(raw: str | None) -> str:
    """Map a free-text specialty onto the known vocabulary.

    Anything containing "emergency" becomes EMERGENCY. Unknown specialties
    pass through trimmed so doctor lookup still works for them; empty input
    falls back to General Practice.
    """
    text = (raw or "").strip()
    if not text:
        return GENERAL_PRACTICE

    lowered = text.lower()
    if "emergency" in lowered:
        return EMERGENCY
    for keywords, specialty in _KEYWORDS:
        if any(k in lowered for k in keywords):
            return specialty
    return text
