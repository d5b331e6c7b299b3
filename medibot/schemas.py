"""
Schemas Module
==============
Typed structured results returned by the completion backend, plus the
plain-text chat reply and the optional image attachment.

Field names are snake_case in Python and camelCase on the wire, matching
the JSON keys the prompts ask the model to produce.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AppMode(str, Enum):
    TRIAGE = "triage"
    PHARMACY = "pharmacy"
    PRECAUTIONS = "precautions"


class UrgencyLevel(str, Enum):
    EMERGENCY = "Emergency"
    PRIORITY = "Priority"
    ROUTINE = "Routine"
    SELF_CARE = "Self-care"


class WireModel(BaseModel):
    """Base for camelCase JSON models; unknown keys from the model are ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class DrugInteraction(WireModel):
    drugs: str
    risk: str
    source: str


class TriageResult(WireModel):
    urgency_level: UrgencyLevel
    recommendation: str
    explanation: str
    drug_interactions: list[DrugInteraction]
    cited_sources: list[str]
    possible_cancer_types: Optional[list[str]] = None
    likely_non_cancer_causes: Optional[list[str]] = None
    treatment_insights: Optional[list[str]] = None

    @field_validator("urgency_level", mode="before")
    @classmethod
    def _normalize_urgency(cls, value):
        # Models often vary the casing ("EMERGENCY", "self-care")
        if isinstance(value, str):
            for level in UrgencyLevel:
                if level.value.lower() == value.strip().lower():
                    return level
        return value


class DosageInformation(WireModel):
    adult: str
    pediatric: str


class MedicationResult(WireModel):
    medication_name: str
    common_uses: list[str]
    mechanism_of_action: str
    dosage_information: DosageInformation
    common_side_effects: list[str]
    crucial_warnings: list[str]


class PrecautionResult(WireModel):
    disease_name: str
    overview: str
    hygiene_practices: list[str]
    dietary_recommendations: list[str]
    lifestyle_adjustments: list[str]
    medical_checkups: list[str]


StructuredResult = Union[TriageResult, MedicationResult, PrecautionResult]

RESULT_TYPES: dict[AppMode, type[WireModel]] = {
    AppMode.TRIAGE: TriageResult,
    AppMode.PHARMACY: MedicationResult,
    AppMode.PRECAUTIONS: PrecautionResult,
}


class ImagePayload(WireModel):
    """Image attachment as sent by the UI (base64 without data-URI prefix)."""

    mime_type: str = Field(pattern=r"^image/[\w.+-]+$")
    data: str = Field(min_length=1)

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class ChatReply(WireModel):
    """Plain conversational reply that bypassed the structured pipeline."""

    text: str
