"""
Decides when the interrupt arbiter should run.

Two triggers feed one debounced primitive:
- an immediate trigger (sentence-ending punctuation in the new fragment, or a
  long unconsumed buffer) schedules analysis with zero delay;
- a silence timer, re-armed on every fragment, schedules analysis once the
  speaker has paused for SILENCE_WINDOW seconds.
"""
from __future__ import annotations
import logging
import re
from typing import Callable

from coach.timers import SingleSlotTimer

logger = logging.getLogger(__name__)

SENTENCE_END_RE = re.compile(r"[.!?]")


class AnalysisScheduler:
    def __init__(
        self,
        on_fire: Callable[[], None],
        silence_window: float = 2.0,
        immediate_chars: int = 150,
        is_blocked: Callable[[], bool] = lambda: False,
    ):
        self.on_fire = on_fire
        self.silence_window = float(silence_window)
        self.immediate_chars = int(immediate_chars)
        self.is_blocked = is_blocked
        self._analysis = SingleSlotTimer("analysis")
        self._silence = SingleSlotTimer("silence")

    @property
    def analysis_pending(self) -> bool:
        return self._analysis.pending

    @property
    def silence_pending(self) -> bool:
        return self._silence.pending

    def schedule_analysis(self, delay: float = 0.0) -> bool:
        """Cancel any pending analysis fire and reschedule it. Returns False if blocked."""
        if self.is_blocked():
            self._analysis.cancel()
            logger.debug("[scheduler] voice channel busy; analysis not scheduled")
            return False
        self._analysis.schedule(delay, self._fire)
        return True

    def on_utterance_growth(self, delta: str, unconsumed_chars: int) -> None:
        if SENTENCE_END_RE.search(delta or "") or unconsumed_chars > self.immediate_chars:
            self.schedule_analysis(0)
        self._silence.schedule(self.silence_window, self.on_silence_window)

    def on_silence_window(self) -> None:
        logger.debug("[scheduler] silence window elapsed")
        self.schedule_analysis(0)

    def cancel(self) -> None:
        self._analysis.cancel()
        self._silence.cancel()

    def _fire(self) -> None:
        self.on_fire()
