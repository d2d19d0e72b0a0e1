"""
Utterance accumulation from streaming speech-recognition hypotheses.

Recognizers emit either cumulative partials ("the mar", "the market", ...)
or full replacement hypotheses. The accumulator turns both into a single
growing utterance without duplicating overlap.
"""
from __future__ import annotations
from dataclasses import dataclass


@dataclass
class UtteranceBuffer:
    """Accumulated utterance plus the analysis watermarks over it."""
    text: str = ""
    consumed_index: int = 0
    analyzed_length: int = 0
    partial_cache: str = ""

    def delta(self) -> str:
        """Text not yet submitted for analysis."""
        return self.text[self.consumed_index:]

    def unconsumed_chars(self) -> int:
        return len(self.text) - self.consumed_index

    def has_new_content(self) -> bool:
        return self.analyzed_length < len(self.text)

    def advance(self, length: int) -> None:
        """Move both watermarks up to `length` (clamped, never backwards)."""
        length = min(length, len(self.text))
        self.analyzed_length = max(self.analyzed_length, length)
        self.consumed_index = max(self.consumed_index, min(length, self.analyzed_length))

    def reset(self) -> None:
        # partial_cache is kept: the recognizer's in-progress hypothesis is
        # still cumulative and must keep contributing only its suffix.
        self.text = ""
        self.consumed_index = 0
        self.analyzed_length = 0


class TranscriptAccumulator:
    """Merges partial/final hypotheses into an UtteranceBuffer."""

    def __init__(self, buffer: UtteranceBuffer | None = None):
        self.buffer = buffer if buffer is not None else UtteranceBuffer()

    def ingest(self, hypothesis: str, is_final: bool) -> str:
        """
        Apply one recognizer event and return the delta appended ("" if none).

        Whitespace-only hypotheses are ignored entirely.
        """
        hyp = (hypothesis or "").strip()
        if not hyp:
            return ""

        buf = self.buffer
        cached = buf.partial_cache
        continues = bool(cached) and hyp.startswith(cached)
        delta = hyp[len(cached):] if continues else hyp

        buf.partial_cache = "" if is_final else hyp

        if not delta.strip():
            return ""
        if not buf.text:
            buf.text = delta.lstrip()
        elif continues:
            buf.text += delta
        else:
            buf.text += " " + delta
        return delta
