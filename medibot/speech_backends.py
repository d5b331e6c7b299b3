"""
Speech Backends Module
======================
Text-to-speech engines behind one callback-style interface: enqueue a
single utterance, get ``on_end`` or ``on_error`` back, cancel at any time.

  - AzureSpeechBackend: Azure Cognitive Services Speech SDK, neural voices
    for a fixed set of languages, plays on the default speaker
  - Pyttsx3Backend: offline native synthesis (SAPI5 / NSSpeech / eSpeak)
    with a queryable, possibly empty voice catalog

Callbacks may fire on SDK or worker threads; callers must marshal them
back to their own event loop.
"""

from __future__ import annotations

import importlib.util
import logging
import os
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional
from xml.sax.saxutils import escape

from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

# Neural voice per supported locale; anything else is unsupported here
AZURE_VOICES: dict[str, str] = {
    "en-US": "en-US-JennyNeural",
    "hi-IN": "hi-IN-SwaraNeural",
    "ta-IN": "ta-IN-PallaviNeural",
    "te-IN": "te-IN-ShrutiNeural",
    "ml-IN": "ml-IN-SobhanaNeural",
    "kn-IN": "kn-IN-SapnaNeural",
    "es-ES": "es-ES-ElviraNeural",
    "fr-FR": "fr-FR-DeniseNeural",
}
AZURE_PROSODY_RATE = "-10%"


class SpeechProviderError(Exception):
    """A provider could not finish an utterance."""


class UnsupportedLanguageError(SpeechProviderError):
    pass


EndCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    lang: str = ""


class SynthesisBackend(ABC):
    """One-utterance-at-a-time synthesis engine."""

    name = "backend"

    def is_available(self) -> bool:
        return True

    def supports(self, locale: str) -> bool:
        return True

    def get_voices(self) -> list[Voice]:
        return []

    @abstractmethod
    def speak(
        self,
        text: str,
        locale: str,
        voice: Optional[Voice],
        on_end: EndCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Start speaking ``text``; exactly one callback fires when it stops."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop the current utterance. Safe to call when idle."""


class AzureSpeechBackend(SynthesisBackend):
    """Networked neural TTS via the Azure Speech SDK.

    Attributes:
        speech_key: Azure Speech API key.
        speech_region: Azure Speech service region.
        speech_config: Configured SpeechConfig instance.
    """

    name = "azure-speech"

    def __init__(self) -> None:
        self.speech_key: str = os.getenv("SPEECH_KEY", "")
        self.speech_region: str = os.getenv("SPEECH_REGION", "westeurope")
        self.speech_config = None
        self._synthesizer = None
        self._initialized = False
        self._init_config()

    def _init_config(self) -> None:
        if not self.speech_key or self.speech_key == "your-key":
            logger.warning(
                "Azure Speech credentials not configured. "
                "Narration will use local synthesis."
            )
            return
        try:
            import azure.cognitiveservices.speech as speechsdk

            self.speech_config = speechsdk.SpeechConfig(
                subscription=self.speech_key,
                region=self.speech_region,
            )
            self._initialized = True
            logger.info("Azure Speech config initialized (region=%s).", self.speech_region)
        except ImportError:
            logger.error("azure-cognitiveservices-speech package not installed.")
        except Exception as exc:
            logger.error("Failed to init Speech config: %s", exc)

    def is_available(self) -> bool:
        return self._initialized

    def supports(self, locale: str) -> bool:
        return locale in AZURE_VOICES

    def speak(self, text, locale, voice, on_end, on_error) -> None:
        if voice is None and locale not in AZURE_VOICES:
            raise UnsupportedLanguageError(f"No Azure voice for {locale}")

        import azure.cognitiveservices.speech as speechsdk

        voice_name = voice.id if voice else AZURE_VOICES[locale]
        ssml = (
            f"<speak version='1.0' xmlns='http://www.w3.org/2001/10/synthesis' xml:lang='{locale}'>"
            f"<voice name='{voice_name}'><prosody rate='{AZURE_PROSODY_RATE}'>"
            f"{escape(text)}</prosody></voice></speak>"
        )

        synthesizer = speechsdk.SpeechSynthesizer(speech_config=self.speech_config)

        def _completed(evt) -> None:
            on_end()

        def _canceled(evt) -> None:
            details = getattr(evt.result, "cancellation_details", None)
            reason = getattr(details, "error_details", "") or str(getattr(details, "reason", "canceled"))
            on_error(reason)

        synthesizer.synthesis_completed.connect(_completed)
        synthesizer.synthesis_canceled.connect(_canceled)
        self._synthesizer = synthesizer
        synthesizer.speak_ssml_async(ssml)

    def cancel(self) -> None:
        synthesizer, self._synthesizer = self._synthesizer, None
        if synthesizer is not None:
            synthesizer.stop_speaking_async()


class Pyttsx3Backend(SynthesisBackend):
    """Offline synthesis via pyttsx3.

    The engine is owned by a single worker thread; every engine call,
    including the voice listing, runs there.
    """

    name = "pyttsx3"

    def __init__(self, rate: Optional[int] = None) -> None:
        self.rate: int = rate or int(os.getenv("LOCAL_TTS_RATE", "180"))
        self._engine = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pyttsx3")

    def is_available(self) -> bool:
        return importlib.util.find_spec("pyttsx3") is not None

    def _get_engine(self):
        if self._engine is None:
            import pyttsx3

            self._engine = pyttsx3.init()
            self._engine.setProperty("rate", self.rate)
            logger.info("pyttsx3 engine initialized (rate=%d).", self.rate)
        return self._engine

    def get_voices(self) -> list[Voice]:
        return self._executor.submit(self._list_voices).result()

    def _list_voices(self) -> list[Voice]:
        voices = []
        for v in self._get_engine().getProperty("voices") or []:
            languages = [_decode_language(lang) for lang in (getattr(v, "languages", None) or [])]
            voices.append(Voice(id=v.id, name=v.name or v.id, lang=next((l for l in languages if l), "")))
        return voices

    def speak(self, text, locale, voice, on_end, on_error) -> None:
        self._executor.submit(self._run, text, voice, on_end, on_error)

    def _run(self, text, voice, on_end, on_error) -> None:
        try:
            engine = self._get_engine()
            if voice is not None:
                engine.setProperty("voice", voice.id)
            engine.say(text)
            engine.runAndWait()
        except Exception as exc:
            logger.error("pyttsx3 synthesis error: %s", exc)
            on_error(str(exc))
            return
        on_end()

    def cancel(self) -> None:
        if self._engine is not None:
            self._engine.stop()


def _decode_language(value) -> str:
    # eSpeak reports languages as bytes with a leading priority byte, e.g. b"\x05en-us"
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    return "".join(ch for ch in str(value) if ch.isprintable()).strip().replace("_", "-")
