"""
Speech Orchestrator Module
==========================
Reads structured results aloud through a prioritized waterfall of
speech providers:

  1. Networked TTS (Azure Speech) when it supports the language
  2. Translate each section, then speak it with local synthesis
  3. Local synthesis directly, with best-effort voice selection

Utterances play strictly one after another: the next one starts only
after the previous one's end callback fired. If a provider fails part
way, the remaining utterances go to the next provider. Calling ``speak``
while already speaking is a toggle: everything stops and nothing new
starts.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

from medibot.languages import base_language, speech_locale
from medibot.speech_backends import (
    AzureSpeechBackend,
    Pyttsx3Backend,
    SpeechProviderError,
    SynthesisBackend,
    Voice,
)
from medibot.speech_sections import SpeechSection, utterance_text
from medibot.translation_client import TranslationClient

logger = logging.getLogger(__name__)

SECTION_PAUSE = 0.5
VOICE_RETRY_DELAY = 0.1
VOICE_RETRY_LIMIT = 20
QUALITY_VOICE_KEYWORDS = ("Google", "Microsoft", "Apple", "Neural", "Online", "Premium")


class SpeechState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class SpeakOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def select_voice(voices: Sequence[Voice], locale: str) -> Optional[Voice]:
    """Pick the best voice for ``locale``.

    Exact-locale voices win over same-base-language ones; within the winning
    group a name containing a quality vendor keyword is preferred.
    """
    wanted = locale.lower()
    base = base_language(locale)
    exact = [v for v in voices if v.lang.lower() == wanted]
    same_base = [v for v in voices if base_language(v.lang) == base] if base else []

    for group in (exact, same_base):
        if group:
            for voice in group:
                if any(keyword.lower() in voice.name.lower() for keyword in QUALITY_VOICE_KEYWORDS):
                    return voice
            return group[0]
    return None


async def speak_utterance(
    backend: SynthesisBackend,
    text: str,
    locale: str,
    voice: Optional[Voice],
    cancel_event: asyncio.Event,
) -> bool:
    """Speak one utterance and wait for its end callback.

    Returns:
        True when the utterance finished, False when cancelled first.

    Raises:
        SpeechProviderError: The backend reported an error.
    """
    loop = asyncio.get_running_loop()
    done: asyncio.Future = loop.create_future()

    def _resolve(error: Optional[str]) -> None:
        if done.done():
            return
        if error is None:
            done.set_result(None)
        else:
            done.set_exception(SpeechProviderError(error))

    def _threadsafe(error: Optional[str]) -> None:
        # Late callbacks after the loop shut down have nobody to notify
        if not loop.is_closed():
            loop.call_soon_threadsafe(_resolve, error)

    try:
        backend.speak(text, locale, voice, lambda: _threadsafe(None), _threadsafe)
    except SpeechProviderError:
        raise
    except Exception as exc:
        raise SpeechProviderError(f"{backend.name}: {exc}") from exc

    cancelled = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({done, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancelled.cancel()

    if not done.done():
        done.cancel()
        return False
    done.result()
    return True


async def _pause(cancel_event: asyncio.Event, seconds: float) -> None:
    if seconds <= 0:
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


# ---------------------------------------------------------------------------
# Provider strategies
# ---------------------------------------------------------------------------

class SpeechProvider:
    """Base strategy: speak a queue of utterances through one backend."""

    name = "provider"

    def __init__(self, backend: SynthesisBackend, section_pause: float = SECTION_PAUSE) -> None:
        self.backend = backend
        self.section_pause = section_pause

    def can_speak(self, locale: str) -> bool:
        return self.backend.is_available()

    async def choose_voice(self, locale: str) -> Optional[Voice]:
        return None

    async def prepare_utterance(self, text: str, locale: str) -> str:
        return text

    async def try_speak(self, utterances: Sequence[str], locale: str, cancel_event: asyncio.Event) -> int:
        """Speak ``utterances`` in order.

        Returns:
            Number of utterances fully spoken. Less than ``len(utterances)``
            means cancellation or a provider failure on the next one.
        """
        try:
            voice = await self.choose_voice(locale)
        except Exception as exc:
            logger.warning("%s could not prepare a voice: %s", self.name, exc)
            return 0

        spoken = 0
        for index, text in enumerate(utterances):
            if cancel_event.is_set():
                break
            text = await self.prepare_utterance(text, locale)
            if cancel_event.is_set():
                break
            try:
                finished = await speak_utterance(self.backend, text, locale, voice, cancel_event)
            except SpeechProviderError as exc:
                logger.warning("%s failed on section %d: %s", self.name, index + 1, exc)
                break
            if not finished:
                break
            spoken += 1
            if index < len(utterances) - 1:
                await _pause(cancel_event, self.section_pause)
        return spoken

    def cancel(self) -> None:
        self.backend.cancel()


class NetworkSpeechProvider(SpeechProvider):
    """Tier 1: networked TTS for its fixed set of languages."""

    name = "network-tts"

    def can_speak(self, locale: str) -> bool:
        if not self.backend.is_available():
            return False
        if not self.backend.supports(locale):
            logger.info("%s does not support %s.", self.name, locale)
            return False
        return True


class LocalSpeechProvider(SpeechProvider):
    """Tier 3: native synthesis with voice selection."""

    name = "local-tts"

    def __init__(
        self,
        backend: SynthesisBackend,
        section_pause: float = SECTION_PAUSE,
        voice_retry_delay: float = VOICE_RETRY_DELAY,
        voice_retry_limit: int = VOICE_RETRY_LIMIT,
    ) -> None:
        super().__init__(backend, section_pause)
        self.voice_retry_delay = voice_retry_delay
        self.voice_retry_limit = voice_retry_limit

    async def choose_voice(self, locale: str) -> Optional[Voice]:
        """Select a voice, waiting for a not-yet-loaded catalog.

        Falls back to the engine default voice when nothing fits or the
        catalog stays empty.
        """
        voices: list[Voice] = []
        for attempt in range(self.voice_retry_limit + 1):
            voices = await asyncio.to_thread(self.backend.get_voices)
            if voices:
                break
            if attempt < self.voice_retry_limit:
                await asyncio.sleep(self.voice_retry_delay)
        else:
            logger.warning("No local voices loaded after %d retries; using engine default.", self.voice_retry_limit)
            return None

        voice = select_voice(voices, locale)
        if voice is None:
            logger.info("No local voice for %s; using engine default.", locale)
        else:
            logger.info("Local voice for %s: %s", locale, voice.name)
        return voice


class TranslateAndSpeakProvider(LocalSpeechProvider):
    """Tier 2: machine-translate each utterance, then speak it locally."""

    name = "translate-and-speak"

    def __init__(self, backend: SynthesisBackend, translation_client: TranslationClient, **kwargs) -> None:
        super().__init__(backend, **kwargs)
        self.translation_client = translation_client

    def can_speak(self, locale: str) -> bool:
        return self.translation_client.completion_client.is_configured and self.backend.is_available()

    async def prepare_utterance(self, text: str, locale: str) -> str:
        if base_language(locale) == "en":
            return text
        return await self.translation_client.translate_or_original(text, locale)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SpeechOrchestrator:
    """Two-state (idle/speaking) narration controller.

    Attributes:
        providers: Strategies tried in priority order.
    """

    def __init__(
        self,
        providers: Optional[list[SpeechProvider]] = None,
        translation_client: Optional[TranslationClient] = None,
    ) -> None:
        if providers is None:
            local = Pyttsx3Backend()
            providers = [
                NetworkSpeechProvider(AzureSpeechBackend()),
                TranslateAndSpeakProvider(local, translation_client or TranslationClient()),
                LocalSpeechProvider(local),
            ]
        self.providers = providers
        self._state = SpeechState.IDLE
        self._cancel_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> SpeechState:
        return self._state

    async def speak(self, sections: Sequence[SpeechSection], locale: str) -> SpeakOutcome:
        """Narrate ``sections`` in order, or stop if already speaking.

        Args:
            sections: Ordered sections to read.
            locale: Output language (short or BCP-47 code).

        Returns:
            COMPLETED, CANCELLED (toggle or teardown) or FAILED (no provider
            could finish).
        """
        if self._state == SpeechState.SPEAKING:
            logger.info("Speak requested while speaking: stopping playback.")
            self.cancel()
            return SpeakOutcome.CANCELLED

        utterances = [utterance_text(section) for section in sections]
        if not utterances:
            return SpeakOutcome.COMPLETED

        voice_locale = speech_locale(locale)
        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        self._state = SpeechState.SPEAKING

        remaining = list(utterances)
        try:
            for provider in self.providers:
                if cancel_event.is_set():
                    return SpeakOutcome.CANCELLED
                if not provider.can_speak(voice_locale):
                    continue

                logger.info("Speaking %d section(s) via %s (%s).", len(remaining), provider.name, voice_locale)
                spoken = await provider.try_speak(remaining, voice_locale, cancel_event)
                if cancel_event.is_set():
                    return SpeakOutcome.CANCELLED

                remaining = remaining[spoken:]
                if not remaining:
                    return SpeakOutcome.COMPLETED
                logger.warning("%s stopped with %d section(s) left; trying next provider.", provider.name, len(remaining))

            logger.error("No speech provider could finish narration (%s).", voice_locale)
            return SpeakOutcome.FAILED
        finally:
            if self._cancel_event is cancel_event:
                self._cancel_event = None
                self._state = SpeechState.IDLE

    def cancel(self) -> None:
        """Stop all speech on every provider tier, whatever the state."""
        if self._cancel_event is not None:
            self._cancel_event.set()
        self._cancel_event = None
        self._state = SpeechState.IDLE

        for provider in self.providers:
            try:
                provider.cancel()
            except Exception as exc:
                logger.error("Failed to stop %s: %s", provider.name, exc)
