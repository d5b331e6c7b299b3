"""
Test doubles shared by the test modules: an async OpenAI-style client
and a callback-driven synthesis backend.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Awaitable, Callable, Optional, Union

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from medibot.speech_backends import SynthesisBackend, Voice

Responder = Union[str, Exception, Callable[[dict], Union[str, Awaitable[str]]]]


class FakeCompletions:
    """Records every ``create`` call and answers from ``responder``."""

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.responder, Exception):
            raise self.responder
        content = self.responder(kwargs) if callable(self.responder) else self.responder
        if inspect.isawaitable(content):
            content = await content
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=None,
        )


class FakeOpenAI:
    def __init__(self, responder: Responder) -> None:
        self.chat = SimpleNamespace(completions=FakeCompletions(responder))

    @property
    def calls(self) -> list[dict]:
        return self.chat.completions.calls


def user_text(kwargs: dict) -> str:
    content = kwargs["messages"][-1]["content"]
    if isinstance(content, list):
        return content[0]["text"]
    return content


def system_text(kwargs: dict) -> str:
    return kwargs["messages"][0]["content"]


TRIAGE_JSON = json.dumps({
    "urgencyLevel": "Priority",
    "recommendation": "See an oncologist within 48 hours.",
    "explanation": "A persistent lump needs evaluation.",
    "drugInteractions": [{"drugs": "Warfarin + Aspirin", "risk": "Bleeding risk", "source": "FDA label"}],
    "citedSources": ["https://www.cancer.gov - National Cancer Institute"],
    "possibleCancerTypes": ["Lymphoma - painless node"],
})

MEDICATION_JSON = json.dumps({
    "medicationName": "Metformin (Glucophage)",
    "commonUses": ["Type 2 diabetes"],
    "mechanismOfAction": "Lowers glucose production in the liver.",
    "dosageInformation": {"adult": "500 mg twice daily with meals", "pediatric": "Consult pediatrician"},
    "commonSideEffects": ["Nausea", "Diarrhea"],
    "crucialWarnings": ["Risk of lactic acidosis"],
})

PRECAUTION_JSON = json.dumps({
    "diseaseName": "Diabetes Mellitus",
    "overview": "A chronic condition affecting blood sugar.",
    "hygienePractices": ["Daily foot checks"],
    "dietaryRecommendations": ["Complex carbs"],
    "lifestyleAdjustments": ["150 minutes of exercise per week"],
    "medicalCheckups": ["A1C test 2-4 times a year"],
})


class FakeSynthesisBackend(SynthesisBackend):
    """Speaks by scheduling its end callback ``duration`` seconds later.

    Tracks start/end order and how many utterances were active at once.
    """

    def __init__(
        self,
        name: str = "fake",
        duration: float = 0.01,
        fail_on: Optional[str] = None,
        voices: Optional[list[Voice]] = None,
        empty_voice_polls: int = 0,
        available: bool = True,
        supported: Optional[set[str]] = None,
    ) -> None:
        self.name = name
        self.duration = duration
        self.fail_on = fail_on
        self.voices = voices or []
        self.empty_voice_polls = empty_voice_polls
        self.available = available
        self.supported = supported
        self.events: list[tuple[str, str]] = []
        self.spoken: list[tuple[str, str, Optional[Voice]]] = []
        self.active = 0
        self.max_active = 0
        self.cancel_count = 0
        self.voice_polls = 0
        self._handles: list[asyncio.TimerHandle] = []

    def is_available(self) -> bool:
        return self.available

    def supports(self, locale: str) -> bool:
        return self.supported is None or locale in self.supported

    def get_voices(self) -> list[Voice]:
        self.voice_polls += 1
        if self.voice_polls <= self.empty_voice_polls:
            return []
        return list(self.voices)

    def speak(self, text, locale, voice, on_end, on_error) -> None:
        loop = asyncio.get_running_loop()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.events.append(("start", text))
        self.spoken.append((text, locale, voice))
        if self.fail_on and self.fail_on in text:
            self._handles.append(loop.call_later(0, self._finish, text, on_error, "synthesis failed"))
        else:
            self._handles.append(loop.call_later(self.duration, self._finish, text, on_end))

    def _finish(self, text, callback, *args) -> None:
        self.active -= 1
        self.events.append(("end", text))
        callback(*args)

    def cancel(self) -> None:
        self.cancel_count += 1
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        self.active = 0

    @property
    def spoken_texts(self) -> list[str]:
        return [text for text, _, _ in self.spoken]
