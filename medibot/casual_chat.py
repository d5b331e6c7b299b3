"""
Casual Chat Module
==================
Detects small talk (greetings, farewells, thanks, questions about the
assistant itself) so it can bypass the structured medical pipeline.

Pattern tables are plain data: per class a list of exact phrases and a
list of regular expressions, both matched against whole segments of the
normalized input. They can be replaced from a JSON file without touching
dispatch logic.

An input is casual only when EVERY segment (split on commas, semicolons,
"&" and "and") matches some class. "thanks, bye" is casual
(thanks + farewell); "hi, I have chest pain" is not.
"""

from __future__ import annotations

import json
import logging
import os
import random
import re
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)


class CasualClass(str, Enum):
    GREETING = "greeting"
    FAREWELL = "farewell"
    THANKS = "thanks"
    META = "meta"


DEFAULT_PATTERNS: dict[str, dict[str, list[str]]] = {
    CasualClass.GREETING.value: {
        "phrases": [
            "hi", "hello", "hey", "yo", "greetings", "good morning",
            "good afternoon", "good evening", "hola", "bonjour", "salut",
        ],
        "patterns": [r"(hi|hello|hey)+( there| medibot)?", r"good (morning|afternoon|evening|day)( there)?"],
    },
    CasualClass.FAREWELL.value: {
        "phrases": ["bye", "goodbye", "see you", "see ya", "cya", "bye bye", "take care"],
        "patterns": [r"(bye)+( for now| then)?", r"see you (later|soon|tomorrow)", r"good ?night"],
    },
    CasualClass.THANKS.value: {
        "phrases": ["thanks", "thank you", "thankyou", "thx", "thank u"],
        "patterns": [r"(thanks|thank you)( so much| a lot| very much)?", r"ty|tysm|much appreciated"],
    },
    CasualClass.META.value: {
        "phrases": ["who are you", "what can you do", "what are you", "how are you"],
        "patterns": [r"what('s| is) your name", r"are you (a )?(bot|robot|human|real|ai)", r"how do you work"],
    },
}

GREETING_REPLIES = [
    "Hi there! 👋 How can I help you with your health today?",
    "Hello! 😊 Ready to assist. What would you like to know?",
    "Hey! 🙌 Ask me anything about symptoms, medicines, or precautions.",
    "Hi! 🩺 What would you like to explore today?",
]
FAREWELL_REPLIES = [
    "Take care! 👋 Stay healthy and come back anytime.",
    "Goodbye! 🌟 Wishing you good health.",
    "See you soon! 😊 Stay well.",
    "Bye! 🫶 Remember, your health matters.",
]
THANKS_REPLIES = [
    "You're welcome! 😊 Happy to help.",
    "Anytime! 🙏 Feel free to ask more.",
    "Glad I could help! 🌟",
    "You got it! 🤝 Let me know if you need more info.",
]
# Used when the live chat call fails and no canned class applies
CHAT_FALLBACK_REPLIES = [
    "Hi there! 👋 How can I assist you today?",
    "Hello! 😊 What would you like to know?",
    "Hey! I'm here to help with any health questions. What's up?",
]

CANNED_REPLIES: dict[CasualClass, list[str]] = {
    CasualClass.GREETING: GREETING_REPLIES,
    CasualClass.FAREWELL: FAREWELL_REPLIES,
    CasualClass.THANKS: THANKS_REPLIES,
}

# Highest priority first; the first combination fully contained in the
# matched classes decides which canned replies are joined, in this order.
REPLY_PRIORITY: list[tuple[CasualClass, ...]] = [
    (CasualClass.THANKS, CasualClass.FAREWELL),
    (CasualClass.GREETING, CasualClass.THANKS),
    (CasualClass.GREETING, CasualClass.FAREWELL),
    (CasualClass.GREETING,),
    (CasualClass.FAREWELL,),
    (CasualClass.THANKS,),
]

_SEGMENT_SPLIT = re.compile(r"[,;&]+|\band\b")
_PUNCTUATION = re.compile(r"[.!?¡¿]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lowercase, drop sentence punctuation and collapse whitespace."""
    lowered = _PUNCTUATION.sub("", (text or "").lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def load_patterns(path: str | Path) -> dict[str, dict[str, list[str]]]:
    """Read a pattern table from JSON (same shape as DEFAULT_PATTERNS)."""
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    unknown = set(data) - {c.value for c in CasualClass}
    if unknown:
        raise ValueError(f"Unknown casual classes in {path}: {sorted(unknown)}")
    return data


class CasualChatClassifier:
    """Classifies input text into zero or more casual classes.

    Attributes:
        phrases: Exact phrases per class (normalized).
        patterns: Compiled full-match regexes per class.
    """

    def __init__(self, table: Optional[dict[str, dict[str, list[str]]]] = None) -> None:
        if table is None:
            path = os.getenv("CASUAL_PATTERNS_PATH", "")
            table = load_patterns(path) if path else DEFAULT_PATTERNS
            if path:
                logger.info("Casual chat patterns loaded from %s.", path)

        self.phrases: dict[CasualClass, set[str]] = {}
        self.patterns: dict[CasualClass, list[re.Pattern]] = {}
        for name, entry in table.items():
            cls = CasualClass(name)
            self.phrases[cls] = {normalize(p) for p in entry.get("phrases", [])}
            self.patterns[cls] = [re.compile(p, re.IGNORECASE) for p in entry.get("patterns", [])]

    def _segment_classes(self, segment: str) -> set[CasualClass]:
        matched = set()
        for cls, phrases in self.phrases.items():
            if segment in phrases or any(p.fullmatch(segment) for p in self.patterns.get(cls, [])):
                matched.add(cls)
        return matched

    def classify(self, text: str) -> set[CasualClass]:
        """Return the casual classes of ``text``, empty when it is a real query."""
        normalized = normalize(text)
        if not normalized:
            return set()

        segments = [s.strip() for s in _SEGMENT_SPLIT.split(normalized)]
        segments = [s for s in segments if s]
        if not segments:
            return set()

        classes: set[CasualClass] = set()
        for segment in segments:
            matched = self._segment_classes(segment)
            if not matched:
                return set()
            classes |= matched
        return classes


def canned_reply(classes: Iterable[CasualClass], rng: Optional[random.Random] = None) -> str:
    """Join canned replies for the highest-priority class combination.

    Always returns a non-empty string; meta-only input gets a generic greeting.
    """
    rng = rng or random.Random()
    classes = set(classes)
    for combination in REPLY_PRIORITY:
        if set(combination) <= classes:
            return " ".join(rng.choice(CANNED_REPLIES[cls]) for cls in combination)
    return rng.choice(CHAT_FALLBACK_REPLIES)
