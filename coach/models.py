"""
Pydantic data models shared by the session core and the API.
"""
from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional

EMOTION_LABELS = ("neutral", "happy", "sad", "angry", "fearful", "disgusted", "surprised")

Severity = Literal["info", "warning", "critical"]


class EmotionSnapshot(BaseModel):
    emotions: Dict[str, float] = Field(default_factory=dict)
    dominant_emotion: str
    confidence: float = Field(ge=0.0, le=1.0)
    captured_at: float

    @classmethod
    def from_scores(cls, scores: Dict[str, float], captured_at: float) -> "EmotionSnapshot":
        """Build a snapshot whose dominant label is the max-valued entry."""
        if not scores:
            raise ValueError("emotion scores must not be empty")
        clamped = {k: max(0.0, min(1.0, float(v))) for k, v in scores.items()}
        label = max(clamped, key=clamped.get)
        return cls(
            emotions=clamped,
            dominant_emotion=label,
            confidence=clamped[label],
            captured_at=captured_at,
        )


class SlideContext(BaseModel):
    current_page: int = Field(ge=1)
    page_text: str = ""
    deck_summary: str = ""


class SlideDeck(BaseModel):
    page_texts: List[str] = Field(default_factory=list)
    summary: str = ""

    @property
    def full_text(self) -> str:
        return "\n".join(self.page_texts)

    def context_for(self, page: int, fallback_chars: int = 1200) -> SlideContext:
        page_text = self.page_texts[page - 1] if 1 <= page <= len(self.page_texts) else ""
        summary = self.summary or self.full_text[:fallback_chars]
        return SlideContext(current_page=page, page_text=page_text, deck_summary=summary)


class CritiqueEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    severity: Severity = "critical"
    created_at: float
    page_number: int = 1
    transcript_context: str = ""


class VoiceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SPEAKING = "speaking"


# feedback log

class FeedbackEntryInput(BaseModel):
    page_number: int = Field(ge=1)
    critique: str
    transcript: str = ""
    page_text: Optional[str] = None
    deck_summary: Optional[str] = None
    section_title: Optional[str] = None


class FeedbackEntry(FeedbackEntryInput):
    id: str
    section_title: str
    created_at: float


class FeedbackSession(BaseModel):
    entries: List[FeedbackEntry] = Field(default_factory=list)
    start_time: Optional[float] = None


class SectionRange(BaseModel):
    title: str
    start_page: int
    end_page: int


class SectionSummary(BaseModel):
    section_title: str
    pages: List[int] = Field(default_factory=list)
    entries: List[FeedbackEntry] = Field(default_factory=list)
    latest_at: float = 0.0


class OverallSummary(BaseModel):
    total_entries: int
    unique_pages: int
    latest_at: Optional[float] = None


# session status

class SessionStatus(BaseModel):
    running: bool
    started_at: Optional[float] = None
    voice_state: VoiceState = VoiceState.IDLE
    analyzing: bool = False
    current_page: int = 1
    transcript_chars: int = 0
    critiques: int = 0
    warnings: List[str] = Field(default_factory=list)
