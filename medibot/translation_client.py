"""
Translation Client Module
=========================
On-demand translation of structured results into an output language,
using the same completion backend with a translation-only prompt.

Every translatable string (and every list item) is sent as its own
request; all requests of one result run concurrently and the translated
result is published only once all of them have resolved. A failing
request marks only its own field as failed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from medibot.completion_client import CompletionClient
from medibot.languages import ENGLISH_NAMES, base_language, language_name
from medibot.prompt_builder import PromptBuilder
from medibot.schemas import (
    DosageInformation,
    DrugInteraction,
    MedicationResult,
    PrecautionResult,
    StructuredResult,
    TriageResult,
)

logger = logging.getLogger(__name__)

TRANSLATION_TEMPERATURE = 0.3
TRANSLATION_MAX_TOKENS = 2048
FAILED_TEMPLATE = "[Translation failed for {language}]"

# urgency_level and cited_sources stay untranslated
TRANSLATABLE_FIELDS: dict[type, tuple[str, ...]] = {
    TriageResult: (
        "recommendation",
        "explanation",
        "possible_cancer_types",
        "likely_non_cancer_causes",
        "treatment_insights",
        "drug_interactions",
    ),
    MedicationResult: (
        "medication_name",
        "common_uses",
        "mechanism_of_action",
        "dosage_information",
        "common_side_effects",
        "crucial_warnings",
    ),
    PrecautionResult: (
        "disease_name",
        "overview",
        "hygiene_practices",
        "dietary_recommendations",
        "lifestyle_adjustments",
        "medical_checkups",
    ),
}


class TranslationClient:
    """Translates text and result fields through the completion backend."""

    def __init__(
        self,
        completion_client: Optional[CompletionClient] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        self.completion_client = completion_client or CompletionClient()
        self.prompt_builder = prompt_builder or PromptBuilder()

    async def _request(self, text: str, target_locale: str) -> str:
        prompt = self.prompt_builder.build_translation_prompt(target_locale, text)
        return await self.completion_client.generate_text(
            prompt,
            temperature=TRANSLATION_TEMPERATURE,
            max_tokens=TRANSLATION_MAX_TOKENS,
            label=f"translate[{base_language(target_locale)}]",
        )

    async def translate_text(self, text: str, target_locale: str) -> str:
        """Translate one string.

        Returns:
            The translation, ``""`` for empty input (no backend call), or a
            failure placeholder when the request fails.
        """
        if not text or not text.strip():
            return ""
        try:
            return await self._request(text, target_locale)
        except Exception as exc:
            logger.error("Translation to %s failed: %s", target_locale, exc)
            return FAILED_TEMPLATE.format(language=language_name(target_locale))

    async def translate_or_original(self, text: str, target_locale: str) -> str:
        """Like translate_text, but returns ``text`` unchanged on failure."""
        if not text or not text.strip():
            return ""
        try:
            return await self._request(text, target_locale)
        except Exception as exc:
            logger.warning("Translation to %s failed, keeping original text: %s", target_locale, exc)
            return text

    async def translate_fields(self, result: StructuredResult, target_locale: str) -> dict[str, Any]:
        """Translate every translatable field of ``result`` concurrently.

        Args:
            result: Structured result in the answer language.
            target_locale: Output language code (e.g. "kn").

        Returns:
            Mapping of field name to translated value, only for fields that
            are present on the result.
        """
        names = [
            name for name in TRANSLATABLE_FIELDS[type(result)]
            if getattr(result, name) is not None
        ]
        values = await asyncio.gather(
            *(self._translate_value(getattr(result, name), target_locale) for name in names)
        )
        logger.info("Translated %d field(s) of %s to %s.", len(names), type(result).__name__, target_locale)
        return dict(zip(names, values))

    async def _translate_value(self, value: Any, target_locale: str) -> Any:
        if isinstance(value, str):
            return await self.translate_text(value, target_locale)
        if isinstance(value, DosageInformation):
            adult, pediatric = await asyncio.gather(
                self.translate_text(value.adult, target_locale),
                self.translate_text(value.pediatric, target_locale),
            )
            return DosageInformation(adult=adult, pediatric=pediatric)
        if isinstance(value, list):
            return list(await asyncio.gather(*(self._translate_item(item, target_locale) for item in value)))
        return value

    async def _translate_item(self, item: Any, target_locale: str) -> Any:
        if isinstance(item, DrugInteraction):
            return item.model_copy(update={"risk": await self.translate_text(item.risk, target_locale)})
        return await self.translate_text(item, target_locale)


class ResultView:
    """Display state of one result panel: original or one translation.

    Attributes:
        original: The result as produced by the completion backend; never mutated.
        translated: Current translation, or None when showing the original.
        locale: Locale of the current translation, or None.
    """

    def __init__(self, original: StructuredResult, translation_client: TranslationClient) -> None:
        self.original = original
        self.translation_client = translation_client
        self.translated: Optional[StructuredResult] = None
        self.locale: Optional[str] = None
        self._generation = 0

    @property
    def current(self) -> StructuredResult:
        return self.translated if self.translated is not None else self.original

    async def translate_to(self, target_locale: str) -> StructuredResult:
        """Discard any prior translation and translate the original.

        Raises:
            ValueError: Unknown target language.
        """
        target = base_language(target_locale)
        if target not in ENGLISH_NAMES:
            raise ValueError(f"Unsupported translation target: {target_locale}")

        self._generation += 1
        generation = self._generation
        self.translated = None
        self.locale = None

        fields = await self.translation_client.translate_fields(self.original, target)
        if generation != self._generation:
            # Another selection happened while this one was in flight
            logger.info("Discarding stale %s translation.", target)
            return self.current

        self.translated = self.original.model_copy(update=fields)
        self.locale = target
        return self.translated

    def show_original(self) -> StructuredResult:
        self._generation += 1
        self.translated = None
        self.locale = None
        return self.original
