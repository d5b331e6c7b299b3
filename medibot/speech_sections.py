"""
Speech Sections Module
======================
Turns a structured result into the ordered sections read aloud by the
speech orchestrator. One section becomes one utterance:
"{title}: {content}", with list content joined into a single phrase.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from medibot.prompt_builder import DISCLAIMER
from medibot.schemas import MedicationResult, PrecautionResult, StructuredResult, TriageResult

_DISCLAIMER_SENTENCE = re.compile(r"^\s*Disclaimer:[^.!?]*[.!?]\s*", re.IGNORECASE)


@dataclass(frozen=True)
class SpeechSection:
    title: str
    content: Union[str, list[str]]

    @property
    def is_empty(self) -> bool:
        if isinstance(self.content, str):
            return not self.content.strip()
        return not any(item.strip() for item in self.content)


def utterance_text(section: SpeechSection) -> str:
    content = section.content
    if not isinstance(content, str):
        content = ", ".join(item.strip() for item in content if item.strip())
    return f"{section.title}: {content.strip()}"


def strip_disclaimer(text: str) -> str:
    """Drop the written disclaimer so narration starts with the substance."""
    without = text.replace(DISCLAIMER, " ")
    return _DISCLAIMER_SENTENCE.sub("", without).strip()


def build_sections(result: StructuredResult) -> list[SpeechSection]:
    """Ordered, non-empty sections for a triage, medication or precaution result."""
    if isinstance(result, TriageResult):
        sections = [
            SpeechSection("Urgency", result.urgency_level.value),
            SpeechSection("Recommendation", result.recommendation),
            SpeechSection("Explanation", strip_disclaimer(result.explanation)),
        ]
    elif isinstance(result, MedicationResult):
        dosage = result.dosage_information
        sections = [
            SpeechSection("Medication", result.medication_name),
            SpeechSection("Common Uses", result.common_uses),
            SpeechSection("How It Works", result.mechanism_of_action),
            SpeechSection("Dosage Information", f"Adult: {dosage.adult}. Pediatric: {dosage.pediatric}"),
            SpeechSection("Common Side Effects", result.common_side_effects),
            SpeechSection("Crucial Warnings", result.crucial_warnings),
        ]
    elif isinstance(result, PrecautionResult):
        sections = [
            SpeechSection("Condition", result.disease_name),
            SpeechSection("Overview", result.overview),
            SpeechSection("Hygiene Practices", result.hygiene_practices),
            SpeechSection("Dietary Recommendations", result.dietary_recommendations),
            SpeechSection("Lifestyle Adjustments", result.lifestyle_adjustments),
            SpeechSection("Medical Check-ups", result.medical_checkups),
        ]
    else:
        raise TypeError(f"Cannot narrate {type(result).__name__}")

    return [section for section in sections if not section.is_empty]
