"""
REST and WebSocket endpoints for the live coaching session.
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from coach.camera import CameraEmotionSource
from coach.config import Settings
from coach.errors import SessionStateError
from coach.feedback import SessionFeedbackLog, derive_overall_summary, derive_section_summaries
from coach.models import EmotionSnapshot, SectionRange, SlideDeck
from coach.oracle import OpenAIOracle
from coach.session import CoachSession
from coach.speech import ElevenLabsSpeaker
from coach.stt import MicrophoneTranscriber


live_session: dict = {"session": None}

router = APIRouter()
settings = Settings()
logger = logging.getLogger(__name__)


class StartRequest(BaseModel):
    capture: bool = False


class TranscriptEvent(BaseModel):
    text: str
    is_final: bool = False


class EmotionEvent(BaseModel):
    snapshot: Optional[EmotionSnapshot] = None


class PageEvent(BaseModel):
    page_number: int = Field(ge=1)


class DeckUpload(BaseModel):
    page_texts: List[str] = Field(default_factory=list)
    summary: Optional[str] = None


class SummaryRequest(BaseModel):
    sections: Optional[List[SectionRange]] = None


def build_session(settings: Settings, capture: bool) -> CoachSession:
    """Wire a session with the production oracle, speaker and (optionally) local capture."""
    return CoachSession(
        settings,
        oracle=OpenAIOracle(settings),
        speaker=ElevenLabsSpeaker(settings),
        feedback_log=feedback_log(),
        transcript_source=MicrophoneTranscriber(settings) if capture else None,
        emotion_source=CameraEmotionSource(settings) if capture else None,
    )


_feedback_logs: dict = {}


def feedback_log() -> SessionFeedbackLog:
    """One shared log per path so routes and the live session serialize on the same lock."""
    path = settings.FEEDBACK_LOG_PATH
    log = _feedback_logs.get(path)
    if log is None:
        log = _feedback_logs[path] = SessionFeedbackLog(path)
    return log


def _require_session() -> CoachSession:
    session = live_session["session"]
    if session is None:
        raise SessionStateError("No active session")
    return session


# ---- session lifecycle ----

@router.post("/session/start")
async def session_start(req: Optional[StartRequest] = None):
    """
    Start a coaching session.

    Args:
        req: `capture=True` also opens the local microphone and camera.

    Returns:
        dict: status plus any degraded-mode warnings.
    """
    if live_session["session"] is not None:
        return {"status": "already_running"}
    capture = bool(req and req.capture)
    logger.debug(f"[api] /session/start capture={capture}")
    session = build_session(settings, capture)
    # claim the handle before awaiting so a concurrent start sees it
    live_session["session"] = session
    try:
        await session.start()
    except Exception as e:
        if live_session["session"] is session:
            live_session["session"] = None
        logger.exception("[api] session start failed")
        raise HTTPException(status_code=500, detail=f"Session start failed: {e}")
    return {"status": "started", "warnings": session.warnings}

@router.get("/session/status")
async def session_status():
    session = live_session["session"]
    if session is None:
        return {"running": False}
    return session.status().model_dump(mode="json")

@router.post("/session/stop")
async def session_stop():
    session = live_session["session"]
    if session is None:
        return {"status": "not_running"}
    live_session["session"] = None
    await session.stop()
    return {"status": "stopped"}


# ---- signal ingestion ----

@router.post("/session/transcript")
async def session_transcript(event: TranscriptEvent):
    session = _require_session()
    session.ingest_transcript(event.text, event.is_final)
    return {"accepted": True, "transcript_chars": len(session.buffer.text)}

@router.post("/session/emotion")
async def session_emotion(event: EmotionEvent):
    session = _require_session()
    session.ingest_emotion(event.snapshot)
    return {"accepted": True}

@router.post("/session/page")
async def session_page(event: PageEvent):
    session = _require_session()
    session.on_page_change(event.page_number)
    return {"accepted": True, "current_page": event.page_number}

@router.post("/session/deck")
async def session_deck(deck: DeckUpload):
    """
    Load slide texts for the active session. When no summary is supplied the
    oracle writes one (falling back to the deck's leading text).
    """
    session = _require_session()
    summary = (deck.summary or "").strip()
    if not summary and deck.page_texts:
        full = "\n".join(deck.page_texts)
        summarize = getattr(session.oracle, "summarize_deck", None)
        summary = await summarize(full) if summarize else full[: settings.DECK_SUMMARY_FALLBACK_CHARS]
    session.load_deck(SlideDeck(page_texts=deck.page_texts, summary=summary))
    return {"pages": len(deck.page_texts), "summary": summary}

@router.websocket("/session/events")
async def session_events(ws: WebSocket):
    """
    Stream signal events as JSON messages:
      {"type": "transcript", "text": str, "is_final": bool}
      {"type": "emotion", "snapshot": {...} | null}
      {"type": "page", "page_number": int}
    Each message is answered with the session status (or an error).
    """
    await ws.accept()
    try:
        while True:
            msg = await ws.receive_json()
            session = live_session["session"]
            if session is None:
                await ws.send_json({"error": "No active session"})
                continue
            kind = (msg or {}).get("type") if isinstance(msg, dict) else None
            try:
                if kind == "transcript":
                    ev = TranscriptEvent.model_validate(msg)
                    session.ingest_transcript(ev.text, ev.is_final)
                elif kind == "emotion":
                    session.ingest_emotion(EmotionEvent.model_validate(msg).snapshot)
                elif kind == "page":
                    session.on_page_change(PageEvent.model_validate(msg).page_number)
                else:
                    await ws.send_json({"error": f"Unknown event type: {kind!r}"})
                    continue
            except ValidationError as e:
                await ws.send_json({"error": e.errors(include_url=False)})
                continue
            await ws.send_json(session.status().model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.debug("[api] events websocket closed")


# ---- session history ----

@router.get("/feedback")
async def feedback():
    return feedback_log().load().model_dump(mode="json")

@router.get("/feedback/summary")
@router.post("/feedback/summary")
async def feedback_summary(req: Optional[SummaryRequest] = None):
    session = feedback_log().load()
    sections = derive_section_summaries(session, req.sections if req else None)
    return {
        "sections": [s.model_dump(mode="json") for s in sections],
        "overall": derive_overall_summary(session).model_dump(mode="json"),
    }

@router.delete("/feedback")
async def feedback_clear():
    feedback_log().clear()
    return {"status": "cleared"}
