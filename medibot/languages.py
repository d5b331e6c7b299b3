"""
Languages Module
================
Locale tables shared by prompts, translation and speech.

  - UI_LOCALES: languages the assistant answers in
  - OUTPUT_LANGUAGES: on-demand translation targets with their voice codes
  - SPEECH_LOCALES: short code to BCP-47 voice locale for narration
"""

from __future__ import annotations

DEFAULT_LOCALE = "en"

# Language display names for the response language instruction
UI_LOCALES: dict[str, str] = {
    "en": "English",
    "es": "Español",
    "fr": "Français",
}

# Translation targets offered on result panels
OUTPUT_LANGUAGES: dict[str, dict[str, str]] = {
    "kn": {"name": "ಕನ್ನಡ", "voice_code": "kn-IN"},
    "hi": {"name": "हिन्दी", "voice_code": "hi-IN"},
    "ta": {"name": "தமிழ்", "voice_code": "ta-IN"},
    "te": {"name": "తెలుగు", "voice_code": "te-IN"},
    "ml": {"name": "മലയാളം", "voice_code": "ml-IN"},
}

SPEECH_LOCALES: dict[str, str] = {
    "kn": "kn-IN",
    "hi": "hi-IN",
    "ta": "ta-IN",
    "te": "te-IN",
    "ml": "ml-IN",
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
}

# English names are clearer than native script inside translation prompts
ENGLISH_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "kn": "Kannada",
    "hi": "Hindi",
    "ta": "Tamil",
    "te": "Telugu",
    "ml": "Malayalam",
}


def base_language(locale: str) -> str:
    """'kn-IN' -> 'kn'."""
    return (locale or DEFAULT_LOCALE).split("-")[0].lower()


def ui_language_name(locale: str) -> str:
    """Display name of a UI locale, English for unknown locales."""
    return UI_LOCALES.get(base_language(locale), UI_LOCALES[DEFAULT_LOCALE])


def language_name(locale: str) -> str:
    """English name of any supported language, or the code itself."""
    return ENGLISH_NAMES.get(base_language(locale), locale)


def speech_locale(locale: str) -> str:
    """Map a short or full locale to the voice locale used for narration."""
    if "-" in (locale or "") and locale in SPEECH_LOCALES.values():
        return locale
    return SPEECH_LOCALES.get(base_language(locale), SPEECH_LOCALES[DEFAULT_LOCALE])


def is_translation_target(locale: str) -> bool:
    return base_language(locale) in OUTPUT_LANGUAGES
