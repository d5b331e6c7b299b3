"""
Completion Client Module
========================
Executes prompts against an OpenAI-compatible chat-completion backend
(Groq by default, Azure OpenAI as an alternative) and turns the raw text
into typed structured results.

Concepts:
  - Structured JSON output (response_format) with low temperature
  - Markdown code-fence stripping before JSON parsing
  - Pydantic schema validation of model output
  - Safe fallback results: no backend or parse error reaches the caller
  - One attempt per user turn, no automatic retry
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from medibot.prompt_builder import DISCLAIMER, Prompt
from medibot.schemas import (
    RESULT_TYPES,
    AppMode,
    DosageInformation,
    ImagePayload,
    MedicationResult,
    PrecautionResult,
    StructuredResult,
    TriageResult,
    UrgencyLevel,
)

load_dotenv()
logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "llama-3.3-70b-versatile"

MODE_TEMPERATURES: dict[AppMode, float] = {
    AppMode.TRIAGE: 0.2,
    AppMode.PHARMACY: 0.15,  # drug information stays near-deterministic
    AppMode.PRECAUTIONS: 0.2,
}
STRUCTURED_MAX_TOKENS = 1024

SYSTEM_ERROR_SOURCE = "System Error - Please Consult Healthcare Provider"


class CompletionError(Exception):
    """The backend answered but the answer is unusable."""


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


# ---------------------------------------------------------------------------
# Fallback results: same shape as a real answer, least-alarming defaults
# ---------------------------------------------------------------------------

def fallback_triage() -> TriageResult:
    return TriageResult(
        urgency_level=UrgencyLevel.ROUTINE,
        recommendation="Please consult a healthcare professional directly for a thorough evaluation.",
        explanation=(
            f"{DISCLAIMER} I apologize, but I encountered a technical issue while "
            "analyzing your symptoms and couldn't complete the analysis properly. "
            "For your safety and peace of mind, please speak with a doctor or "
            "healthcare provider who can properly evaluate your concerns."
        ),
        drug_interactions=[],
        cited_sources=[SYSTEM_ERROR_SOURCE],
    )


def fallback_medication() -> MedicationResult:
    return MedicationResult(
        medication_name="Medication Information Currently Unavailable",
        common_uses=["I apologize, but I couldn't retrieve medication information at this time"],
        mechanism_of_action=(
            "I encountered a technical issue while looking up this medication. For your "
            f"safety, please consult a pharmacist or your prescribing doctor directly. {DISCLAIMER}"
        ),
        dosage_information=DosageInformation(
            adult="Please consult your pharmacist - they can provide accurate dosing information",
            pediatric="Please consult your pediatrician - pediatric dosing requires professional guidance",
        ),
        common_side_effects=["Information unavailable - speak with healthcare provider"],
        crucial_warnings=[
            "IMPORTANT: Always consult a licensed pharmacist or healthcare provider before "
            "taking any medication. Never rely solely on AI for medication decisions."
        ],
    )


def fallback_precautions(context_found: bool = False) -> PrecautionResult:
    if context_found:
        overview = (
            "I apologize, but I'm having trouble processing this information right now. "
            "While I have some relevant health information in my knowledge base, I couldn't "
            "generate a complete response for you."
        )
    else:
        overview = (
            "I apologize, but I don't have specific information about this topic in my "
            "medical knowledge base, and I'm unable to retrieve general guidance at this moment."
        )
    return PrecautionResult(
        disease_name="Health Information Currently Unavailable",
        overview=f"{overview} {DISCLAIMER}",
        hygiene_practices=[
            "For evidence-based health guidance, please consult trusted sources like the "
            "CDC, WHO, or your healthcare provider"
        ],
        dietary_recommendations=[
            "A registered dietitian can provide personalized nutrition guidance for your "
            "specific health needs"
        ],
        lifestyle_adjustments=[
            "Your primary care doctor can recommend lifestyle changes tailored to your "
            "individual health situation"
        ],
        medical_checkups=[
            "Schedule a check-up with your primary care physician to discuss appropriate "
            "preventive care and screening schedules"
        ],
    )


def fallback_result(mode: AppMode, context_found: bool = False) -> StructuredResult:
    mode = AppMode(mode)
    if mode == AppMode.TRIAGE:
        return fallback_triage()
    if mode == AppMode.PHARMACY:
        return fallback_medication()
    return fallback_precautions(context_found)


class CompletionClient:
    """Async chat-completion client with structured-result parsing.

    Attributes:
        openai_client: AsyncOpenAI / AsyncAzureOpenAI instance (or a stand-in
            exposing ``chat.completions.create``).
        model: Model or deployment name.
        backend: "groq", "azure" or "custom".
    """

    def __init__(self, openai_client=None, model: Optional[str] = None) -> None:
        """Initialize the client.

        Args:
            openai_client: Optional pre-built async client. When omitted the
                client is created from environment variables.
            model: Optional model override.
        """
        self.openai_client = openai_client
        self.model: str = model or os.getenv("LLM_MODEL", DEFAULT_MODEL)
        self.backend = "custom" if openai_client is not None else "none"
        self._initialized = openai_client is not None
        if openai_client is None:
            self._init_openai()

    def _init_openai(self) -> None:
        """Create the async client from LLM_* or AZURE_OPENAI_* settings."""
        key = os.getenv("LLM_API_KEY") or os.getenv("GROQ_API_KEY", "")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT", "")
        azure_key = os.getenv("AZURE_OPENAI_KEY", "")

        try:
            if key and key != "your-key":
                from openai import AsyncOpenAI

                base_url = os.getenv("LLM_BASE_URL", DEFAULT_BASE_URL)
                try:
                    self.openai_client = AsyncOpenAI(api_key=key, base_url=base_url)
                except TypeError:
                    import httpx

                    self.openai_client = AsyncOpenAI(
                        api_key=key, base_url=base_url, http_client=httpx.AsyncClient()
                    )
                self.backend = "groq" if "groq.com" in base_url else "openai-compatible"

            elif azure_endpoint and azure_key and azure_key != "your-key":
                from openai import AsyncAzureOpenAI

                api_version = os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")
                try:
                    self.openai_client = AsyncAzureOpenAI(
                        azure_endpoint=azure_endpoint,
                        api_key=azure_key,
                        api_version=api_version,
                    )
                except TypeError:
                    import httpx

                    self.openai_client = AsyncAzureOpenAI(
                        azure_endpoint=azure_endpoint,
                        api_key=azure_key,
                        api_version=api_version,
                        http_client=httpx.AsyncClient(),
                    )
                self.model = os.getenv("GPT_DEPLOYMENT", self.model)
                self.backend = "azure"

            else:
                logger.warning(
                    "Completion backend credentials not configured. "
                    "Structured requests will return fallback results."
                )
                return

            self._initialized = True
            logger.info("Completion client initialized (backend=%s, model=%s).", self.backend, self.model)
        except Exception as exc:
            logger.error("Failed to init completion client: %s", exc)

    @property
    def is_configured(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Structured completion
    # ------------------------------------------------------------------

    async def complete(
        self,
        prompt: Prompt,
        mode: AppMode,
        image: Optional[ImagePayload] = None,
        context_found: bool = False,
    ) -> StructuredResult:
        """Run one structured request and parse it into the mode's result type.

        Never raises: transport errors, non-JSON text and schema mismatches
        all produce ``fallback_result(mode)``; an unknown mode gets the triage
        fallback.

        Args:
            prompt: System/user prompt pair.
            mode: Selects the result schema and sampling temperature.
            image: Optional image attachment.
            context_found: Whether retrieval supplied context (precautions
                fallback wording depends on it).

        Returns:
            A TriageResult, MedicationResult or PrecautionResult.
        """
        try:
            mode = AppMode(mode)
        except ValueError:
            logger.error("Unknown mode %r; returning triage fallback.", mode)
            return fallback_triage()

        if not self._initialized:
            return fallback_result(mode, context_found)

        try:
            response = await self.openai_client.chat.completions.create(
                model=self.model,
                messages=self._messages(prompt, image),
                temperature=MODE_TEMPERATURES[mode],
                max_tokens=STRUCTURED_MAX_TOKENS,
                response_format={"type": "json_object"},
            )
            self._log_usage(f"complete[{mode.value}]", response)

            raw = response.choices[0].message.content or ""
            if not raw.strip():
                raise CompletionError("empty completion")

            result = RESULT_TYPES[mode].model_validate(json.loads(strip_code_fences(raw)))
            logger.info("Structured %s result parsed (%d chars).", mode.value, len(raw))
            return result

        except (json.JSONDecodeError, ValidationError, CompletionError) as exc:
            logger.error("Unusable %s completion: %s", mode.value, exc)
        except Exception as exc:
            logger.error("%s completion request failed: %s", mode.value.capitalize(), exc)
        return fallback_result(mode, context_found)

    # ------------------------------------------------------------------
    # Plain-text completion (chat, translation)
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        prompt: Prompt,
        temperature: float,
        max_tokens: int,
        label: str = "generate_text",
    ) -> str:
        """Return the trimmed text of a plain completion.

        Unlike ``complete`` this raises, so each caller picks its own
        fallback (canned reply, failure placeholder, untranslated text).

        Raises:
            CompletionError: Client not configured or empty answer.
            Exception: Any transport error from the SDK.
        """
        if not self._initialized:
            raise CompletionError("completion backend not configured")

        response = await self.openai_client.chat.completions.create(
            model=self.model,
            messages=self._messages(prompt, None),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        self._log_usage(label, response)

        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise CompletionError("empty completion")
        return text

    async def check_availability(self) -> bool:
        """Send the backend a tiny request to see whether it answers."""
        if not self._initialized:
            return False
        try:
            await self.openai_client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "test"}],
                max_tokens=5,
            )
            return True
        except Exception as exc:
            logger.error("Completion backend availability check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _messages(prompt: Prompt, image: Optional[ImagePayload]) -> list[dict]:
        if image is None:
            user_content = prompt.user_prompt
        else:
            user_content = [
                {"type": "text", "text": prompt.user_prompt},
                {"type": "image_url", "image_url": {"url": image.to_data_uri()}},
            ]
        return [
            {"role": "system", "content": prompt.system_prompt},
            {"role": "user", "content": user_content},
        ]

    @staticmethod
    def _log_usage(label: str, response) -> None:
        # Token usage tracking for cost monitoring
        usage = getattr(response, "usage", None)
        if usage:
            logger.info(
                "%s - tokens used: prompt=%d completion=%d total=%d",
                label,
                usage.prompt_tokens,
                usage.completion_tokens,
                usage.total_tokens,
            )
