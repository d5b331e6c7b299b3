"""
MediBot Health Assistant API Server
===================================
FastAPI backend exposing the conversational pipeline to a chat UI:
turns, on-demand translation of result panels, and narration.

Run:
    pip install -e .
    python medibot_server.py

Then open: http://localhost:8002/docs
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# ── path setup ────────────────────────────────────────────────────────────────
ROOT = Path(__file__).parent
sys.path.insert(0, str(ROOT))

from medibot.completion_client import CompletionClient
from medibot.languages import OUTPUT_LANGUAGES, UI_LOCALES, base_language, is_translation_target
from medibot.mode_dispatcher import ModeDispatcher
from medibot.schemas import AppMode, ChatReply, ImagePayload, WireModel
from medibot.speech_orchestrator import SpeechOrchestrator, SpeechState
from medibot.speech_sections import build_sections
from medibot.translation_client import ResultView, TranslationClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── services ──────────────────────────────────────────────────────────────────

@dataclass
class Services:
    completion_client: CompletionClient
    dispatcher: ModeDispatcher
    translation_client: TranslationClient
    speech: SpeechOrchestrator


def build_services() -> Services:
    """Wire one shared completion client through every component."""
    completion = CompletionClient()
    translation = TranslationClient(completion_client=completion)
    return Services(
        completion_client=completion,
        dispatcher=ModeDispatcher(completion_client=completion),
        translation_client=translation,
        speech=SpeechOrchestrator(translation_client=translation),
    )


@dataclass
class Session:
    id: str
    mode: AppMode = AppMode.TRIAGE
    locale: str = "en"
    busy: bool = False
    history: list[dict] = field(default_factory=list)
    results: dict[str, ResultView] = field(default_factory=dict)


@dataclass
class Narration:
    """The panel whose narration currently owns the audio device."""

    session_id: str
    result_id: str
    task: asyncio.Task


services = build_services()
SESSIONS: dict[str, Session] = {}
_narration: Optional[Narration] = None
_speech_tasks: set[asyncio.Task] = set()

app = FastAPI(title="MediBot Health Assistant", version="1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── request bodies ────────────────────────────────────────────────────────────

class SessionRequest(BaseModel):
    mode: AppMode = AppMode.TRIAGE
    locale: str = "en"


class SessionUpdate(BaseModel):
    mode: Optional[AppMode] = None
    locale: Optional[str] = None


class TurnRequest(WireModel):
    text: str = ""
    image: Optional[ImagePayload] = None


class TranslateRequest(BaseModel):
    locale: str


class SpeakRequest(BaseModel):
    locale: Optional[str] = None


# ── helpers ───────────────────────────────────────────────────────────────────

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_locale(locale: str) -> str:
    code = base_language(locale)
    if code not in UI_LOCALES:
        raise HTTPException(400, f"Unsupported locale. Must be one of: {sorted(UI_LOCALES)}")
    return code


def _get_session(session_id: str) -> Session:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(404, "Session not found")
    return session


def _get_view(session_id: str, result_id: str) -> tuple[Session, ResultView]:
    session = _get_session(session_id)
    view = session.results.get(result_id)
    if view is None:
        raise HTTPException(404, "Result not found")
    return session, view


def _owns_narration(session_id: str, result_id: Optional[str] = None) -> bool:
    if _narration is None or _narration.task.done():
        return False
    if _narration.session_id != session_id:
        return False
    return result_id is None or _narration.result_id == result_id


def _stop_narration(session_id: str, result_id: Optional[str] = None) -> None:
    """Cancel narration only when it was started from this session (and panel)."""
    if _owns_narration(session_id, result_id):
        services.speech.cancel()


def _narration_finished(task: asyncio.Task) -> None:
    global _narration
    if _narration is not None and _narration.task is task:
        _narration = None


def _session_json(session: Session) -> dict:
    return {
        "sessionId": session.id,
        "mode": session.mode.value,
        "locale": session.locale,
        "busy": session.busy,
        "history": session.history,
    }


def _view_json(result_id: str, view: ResultView) -> dict:
    return {
        "resultId": result_id,
        "kind": type(view.original).__name__,
        "locale": view.locale,
        "result": view.current.to_wire(),
    }


# ── sessions ──────────────────────────────────────────────────────────────────

@app.post("/api/sessions")
def api_create_session(body: SessionRequest):
    session = Session(id=uuid4().hex, mode=body.mode, locale=_check_locale(body.locale))
    SESSIONS[session.id] = session
    logger.info("Session created: %s (mode=%s, locale=%s)", session.id, session.mode.value, session.locale)
    return _session_json(session)


@app.get("/api/sessions/{session_id}")
def api_get_session(session_id: str):
    return _session_json(_get_session(session_id))


@app.patch("/api/sessions/{session_id}")
def api_update_session(session_id: str, body: SessionUpdate):
    session = _get_session(session_id)
    if body.mode is not None:
        session.mode = body.mode
    if body.locale is not None:
        session.locale = _check_locale(body.locale)
    return _session_json(session)


@app.delete("/api/sessions/{session_id}")
async def api_delete_session(session_id: str):
    _get_session(session_id)
    _stop_narration(session_id)
    SESSIONS.pop(session_id, None)
    logger.info("Session deleted: %s", session_id)
    return {"ok": True}


@app.delete("/api/sessions/{session_id}/history")
async def api_clear_history(session_id: str):
    session = _get_session(session_id)
    _stop_narration(session_id)
    session.history.clear()
    session.results.clear()
    return {"ok": True}


# ── turns ─────────────────────────────────────────────────────────────────────

@app.post("/api/sessions/{session_id}/turn")
async def api_turn(session_id: str, body: TurnRequest):
    session = _get_session(session_id)
    if session.busy:
        raise HTTPException(409, "A turn is already in progress for this session")

    # A new turn discards the previous panel and its narration
    _stop_narration(session_id)
    session.results.clear()

    session.busy = True
    try:
        session.history.append({"sender": "user", "text": body.text, "hasImage": body.image is not None, "at": _now()})
        outcome = await services.dispatcher.handle_turn(session.mode, body.text, body.image, session.locale)
    finally:
        session.busy = False

    if isinstance(outcome, ChatReply):
        message = {"sender": "ai", "kind": "chat", "text": outcome.text, "at": _now()}
        session.history.append(message)
        return message

    result_id = uuid4().hex[:12]
    view = ResultView(outcome, services.translation_client)
    session.results = {result_id: view}
    session.history.append({"sender": "ai", "kind": type(outcome).__name__, "resultId": result_id, "at": _now()})
    return _view_json(result_id, view)


# ── result panels ─────────────────────────────────────────────────────────────

@app.get("/api/sessions/{session_id}/results/{result_id}")
def api_get_result(session_id: str, result_id: str):
    _, view = _get_view(session_id, result_id)
    return _view_json(result_id, view)


@app.post("/api/sessions/{session_id}/results/{result_id}/translate")
async def api_translate(session_id: str, result_id: str, body: TranslateRequest):
    _, view = _get_view(session_id, result_id)
    if not is_translation_target(body.locale):
        raise HTTPException(400, f"Unsupported output language. Must be one of: {sorted(OUTPUT_LANGUAGES)}")
    _stop_narration(session_id, result_id)
    await view.translate_to(body.locale)
    return _view_json(result_id, view)


@app.post("/api/sessions/{session_id}/results/{result_id}/original")
async def api_show_original(session_id: str, result_id: str):
    _, view = _get_view(session_id, result_id)
    _stop_narration(session_id, result_id)
    view.show_original()
    return _view_json(result_id, view)


# ── speech ────────────────────────────────────────────────────────────────────

@app.post("/api/sessions/{session_id}/results/{result_id}/speak")
async def api_speak(session_id: str, result_id: str, body: SpeakRequest):
    """Toggle narration of the panel as currently displayed.

    Only the panel that started playback can toggle it off; other panels
    get 409 until it finishes or is cancelled.
    """
    global _narration
    session, view = _get_view(session_id, result_id)
    locale = body.locale or view.locale or session.locale

    if services.speech.state == SpeechState.SPEAKING:
        if _narration is not None and not _owns_narration(session_id, result_id):
            raise HTTPException(409, "Narration is playing for another result panel")
        outcome = await services.speech.speak([], locale)
        return {"state": services.speech.state.value, "outcome": outcome.value}

    sections = build_sections(view.current)
    task = asyncio.create_task(services.speech.speak(sections, locale))
    _narration = Narration(session_id=session_id, result_id=result_id, task=task)
    _speech_tasks.add(task)
    task.add_done_callback(_speech_tasks.discard)
    task.add_done_callback(_narration_finished)
    # Let the task claim the speaking state before answering
    await asyncio.sleep(0)
    return {"state": services.speech.state.value, "sections": len(sections), "locale": locale}


@app.post("/api/speech/cancel")
async def api_cancel_speech():
    services.speech.cancel()
    return {"state": services.speech.state.value}


@app.get("/api/speech")
def api_speech_state():
    return {"state": services.speech.state.value}


# ── metadata ──────────────────────────────────────────────────────────────────

@app.get("/api/languages")
def api_languages():
    return {"uiLocales": UI_LOCALES, "outputLanguages": OUTPUT_LANGUAGES}


@app.get("/health")
async def health(check: bool = False):
    completion = services.completion_client
    status = {
        "status": "ok",
        "completionBackend": completion.backend,
        "completionConfigured": completion.is_configured,
        "speechProviders": [p.name for p in services.speech.providers],
        "sessions": len(SESSIONS),
    }
    if check:
        status["completionReachable"] = await completion.check_availability()
    return status


# ── Entry point ───────────────────────────────────────────────────────────────
if __name__ == "__main__":
    host = os.getenv("MEDIBOT_HOST", "0.0.0.0")
    port = int(os.getenv("MEDIBOT_PORT", "8002"))
    print("\n" + "═" * 58)
    print("  🩺  MediBot Health Assistant API")
    print("═" * 58)
    print(f"  ➜  API:        http://localhost:{port}")
    print(f"  ➜  API docs:   http://localhost:{port}/docs")
    print(f"  ➜  Backend:    {services.completion_client.backend}")
    print("═" * 58 + "\n")
    uvicorn.run(app, host=host, port=port, reload=False, log_level="warning")
