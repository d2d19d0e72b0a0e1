"""
Latest-known emotion and slide state, read by the arbiter at decision time.
"""
from __future__ import annotations
from typing import NamedTuple, Optional

from coach.models import EmotionSnapshot, SlideContext, SlideDeck


class SignalFrame(NamedTuple):
    emotion: Optional[EmotionSnapshot]
    page: int


class SignalWindow:
    """Last-write-wins storage for emotion, page and deck."""

    def __init__(self, fallback_chars: int = 1200):
        self._emotion: Optional[EmotionSnapshot] = None
        self._page = 1
        self._deck = SlideDeck()
        self.fallback_chars = fallback_chars

    def update_emotion(self, snapshot: Optional[EmotionSnapshot]) -> None:
        self._emotion = snapshot

    def update_page(self, page_number: int) -> None:
        self._page = int(page_number)

    def update_deck(self, deck: SlideDeck) -> None:
        self._deck = deck

    @property
    def deck(self) -> SlideDeck:
        return self._deck

    def current(self) -> SignalFrame:
        return SignalFrame(self._emotion, self._page)

    def slide_context(self) -> SlideContext:
        return self._deck.context_for(max(1, self._page), self.fallback_chars)


def format_emotion_summary(snapshot: Optional[EmotionSnapshot]) -> str:
    """Dominant label plus the two strongest secondary labels, as percentages."""
    if snapshot is None:
        return "No face detected"
    out = f"Dominant: {snapshot.dominant_emotion} ({snapshot.confidence * 100:.0f}%)"
    ranked = sorted(snapshot.emotions.items(), key=lambda kv: kv[1], reverse=True)
    secondary = ", ".join(f"{label} ({value * 100:.0f}%)" for label, value in ranked[1:3])
    if secondary:
        out += f" | Secondary: {secondary}"
    return out
