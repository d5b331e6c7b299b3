"""
Mode Dispatcher Module
======================
Entry point for one user turn. Casual small talk is classified first and
answered with a short conversational reply; everything else goes to the
selected mode's prompt and structured completion.

Casual policy: a live, higher-temperature chat completion is tried first;
if it fails, canned replies for the matched classes are used instead.
"""

from __future__ import annotations

import logging
import random
from typing import Optional, Union

from medibot.casual_chat import CasualChatClassifier, CasualClass, canned_reply
from medibot.completion_client import CompletionClient
from medibot.prompt_builder import PromptBuilder
from medibot.retriever import Retriever
from medibot.schemas import AppMode, ChatReply, ImagePayload, StructuredResult

logger = logging.getLogger(__name__)

CHAT_TEMPERATURE = 0.8
CHAT_MAX_TOKENS = 200

DEFAULT_GREETING = "Hello there! I'm ready to listen. How can I assist you today?"
INVALID_MODE_REPLY = "Error: Invalid mode selected."

TurnResult = Union[StructuredResult, ChatReply]


class ModeDispatcher:
    """Routes a turn to casual chat or to a mode-specific structured request.

    Attributes:
        completion_client: Backend used for both chat and structured calls.
        retriever: Knowledge-base lookup for Precautions mode.
        prompt_builder: Prompt assembly.
        classifier: Casual-chat pattern classifier.
    """

    def __init__(
        self,
        completion_client: Optional[CompletionClient] = None,
        retriever: Optional[Retriever] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        classifier: Optional[CasualChatClassifier] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.completion_client = completion_client or CompletionClient()
        self.retriever = retriever or Retriever()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.classifier = classifier or CasualChatClassifier()
        self.rng = rng or random.Random()

    async def handle_turn(
        self,
        mode: Union[AppMode, str],
        text: str,
        image: Optional[ImagePayload] = None,
        locale: str = "en",
    ) -> TurnResult:
        """Handle one user turn.

        Never raises: backend failures surface as fallback results.

        Args:
            mode: "triage", "pharmacy" or "precautions".
            text: User text (may be empty when an image is attached).
            image: Optional image attachment.
            locale: UI locale for the answer language.

        Returns:
            A structured result for domain queries, or a ChatReply.
        """
        text = (text or "").strip()

        if image is None:
            if not text:
                return ChatReply(text=DEFAULT_GREETING)
            classes = self.classifier.classify(text)
            if classes:
                logger.info("Casual input detected (%s).", ", ".join(sorted(c.value for c in classes)))
                return await self.casual_reply(text, classes, locale)

        try:
            mode = AppMode(mode)
        except ValueError:
            logger.warning("Invalid mode requested: %r", mode)
            return ChatReply(text=INVALID_MODE_REPLY)

        if mode == AppMode.TRIAGE:
            return await self.get_triage_recommendation(text, locale, image)
        if mode == AppMode.PHARMACY:
            return await self.get_medication_info(text, locale, image)
        return await self.get_precautions_info(text, locale)

    # ------------------------------------------------------------------
    # Casual chat
    # ------------------------------------------------------------------

    async def casual_reply(self, text: str, classes: set[CasualClass], locale: str) -> ChatReply:
        """Live chat reply, canned replies when the backend fails."""
        prompt = self.prompt_builder.build_chat_prompt(locale, text)
        try:
            reply = await self.completion_client.generate_text(
                prompt,
                temperature=CHAT_TEMPERATURE,
                max_tokens=CHAT_MAX_TOKENS,
                label="chat",
            )
            return ChatReply(text=reply)
        except Exception as exc:
            logger.warning("Chat reply failed, using canned reply: %s", exc)
            return ChatReply(text=canned_reply(classes, self.rng))

    # ------------------------------------------------------------------
    # Domain modes
    # ------------------------------------------------------------------

    async def get_triage_recommendation(
        self, text: str, locale: str, image: Optional[ImagePayload] = None
    ) -> StructuredResult:
        prompt = self.prompt_builder.build_prompt(AppMode.TRIAGE, locale, text, has_image=image is not None)
        logger.info("Triage request: '%s' (image=%s)", text[:50], image is not None)
        return await self.completion_client.complete(prompt, AppMode.TRIAGE, image)

    async def get_medication_info(
        self, text: str, locale: str, image: Optional[ImagePayload] = None
    ) -> StructuredResult:
        prompt = self.prompt_builder.build_prompt(AppMode.PHARMACY, locale, text, has_image=image is not None)
        logger.info("Medication request: '%s' (image=%s)", text[:50], image is not None)
        return await self.completion_client.complete(prompt, AppMode.PHARMACY, image)

    async def get_precautions_info(self, text: str, locale: str) -> StructuredResult:
        """RAG path: retrieve one article and restrict the model to it."""
        context = self.retriever.retrieve(text)
        prompt = self.prompt_builder.build_prompt(AppMode.PRECAUTIONS, locale, text, retrieved_context=context)
        return await self.completion_client.complete(
            prompt, AppMode.PRECAUTIONS, context_found=bool(context)
        )
