"""
Interrupt arbiter: the suppression gate and the oracle round-trip.

`attempt_analysis` may be fired by any number of overlapping timers; the
gate makes it idempotent so at most one oracle call is ever in flight.
Watermarks only advance to the transcript length observed when the call was
made, so speech ingested while the oracle is thinking is judged next cycle.
"""
from __future__ import annotations
import asyncio
import logging
import time
import uuid
from typing import Callable, List, Optional

from coach.config import Settings
from coach.models import CritiqueEvent
from coach.oracle import InterruptVerdict, Oracle, OracleRequest
from coach.signals import SignalWindow, format_emotion_summary
from coach.transcript import UtteranceBuffer
from coach.voice import VoiceChannel

logger = logging.getLogger(__name__)

NEVER = float("-inf")


class InterruptArbiter:
    def __init__(
        self,
        settings: Settings,
        buffer: UtteranceBuffer,
        signals: SignalWindow,
        voice: VoiceChannel,
        oracle: Oracle,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.s = settings
        self.buffer = buffer
        self.signals = signals
        self.voice = voice
        self.oracle = oracle
        self.clock = clock
        self.last_analysis_at = NEVER
        self.last_critique_at = NEVER
        self.critiques: List[CritiqueEvent] = []
        self._in_flight: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[CritiqueEvent], None]] = []
        self._done_listeners: List[Callable[[Optional[CritiqueEvent]], None]] = []

    @property
    def analyzing(self) -> bool:
        return self._in_flight is not None

    def add_critique_listener(self, listener: Callable[[CritiqueEvent], None]) -> None:
        self._listeners.append(listener)

    def add_analysis_listener(self, listener: Callable[[Optional[CritiqueEvent]], None]) -> None:
        """Called after every completed oracle cycle with the critique, or None."""
        self._done_listeners.append(listener)

    def check_gate(self) -> Optional[str]:
        """Return the reason this attempt is suppressed, or None to proceed."""
        if self.voice.busy:
            return "voice_busy"
        if self._in_flight is not None:
            return "in_flight"
        now = self.clock()
        if now - self.last_analysis_at < self.s.MIN_ANALYSIS_INTERVAL:
            return "rate_limited"
        if not self.buffer.has_new_content():
            return "no_new_content"
        delta = self.buffer.delta()
        has_emotion = self.signals.current().emotion is not None
        if not delta.strip() and not has_emotion:
            return "nothing_to_judge"
        if len(delta.strip()) < self.s.MIN_UTTERANCE_CHARS and not has_emotion:
            return "too_short"
        if now - self.last_critique_at < self.s.CRITIQUE_COOLDOWN:
            return "cooldown"
        return None

    def attempt_analysis(self) -> Optional[asyncio.Task]:
        reason = self.check_gate()
        if reason is not None:
            logger.debug(f"[arbiter] analysis suppressed: {reason}")
            return None

        frame = self.signals.current()
        slide = self.signals.slide_context()
        processed_length = len(self.buffer.text)
        request = OracleRequest(
            transcript_delta=self.buffer.delta()[-self.s.ORACLE_MAX_CHARS:],
            emotion_summary=format_emotion_summary(frame.emotion),
            page_text=slide.page_text,
            deck_summary=slide.deck_summary,
            previous_critiques=[c.text for c in self.critiques],
        )
        logger.debug(f"[arbiter] calling oracle chars={len(request.transcript_delta)} page={slide.current_page}")
        self._in_flight = asyncio.get_running_loop().create_task(
            self._analyze(request, processed_length, slide.current_page)
        )
        return self._in_flight

    async def cancel(self) -> None:
        task = self._in_flight
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._in_flight = None

    async def _analyze(self, request: OracleRequest, processed_length: int, page: int) -> Optional[CritiqueEvent]:
        critique = None
        try:
            verdict = await asyncio.wait_for(self.oracle.evaluate(request), timeout=self.s.ORACLE_TIMEOUT)
            if isinstance(verdict, InterruptVerdict):
                critique = self._deliver(verdict.message, request.transcript_delta, page)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning(f"[arbiter] oracle timed out after {self.s.ORACLE_TIMEOUT}s; no critique this cycle")
        except Exception:
            logger.exception("[arbiter] oracle call failed; no critique this cycle")
        finally:
            self._in_flight = None
            self.last_analysis_at = self.clock()
        if critique is None:
            self.buffer.advance(processed_length)
        for listener in list(self._done_listeners):
            try:
                listener(critique)
            except Exception:
                logger.exception("[arbiter] analysis listener failed")
        return critique

    def _deliver(self, message: str, transcript: str, page: int) -> CritiqueEvent:
        critique = CritiqueEvent(
            id=uuid.uuid4().hex,
            text=message,
            severity="critical",
            created_at=time.time(),
            page_number=page,
            transcript_context=transcript,
        )
        # raises VoiceBusyError; handled by the caller as a failed cycle
        self.voice.speak(critique)
        self.critiques.append(critique)
        self.buffer.reset()
        self.last_critique_at = self.clock()
        logger.info(f"[arbiter] critique page={page}: {message}")
        for listener in list(self._listeners):
            try:
                listener(critique)
            except Exception:
                logger.exception("[arbiter] critique listener failed")
        return critique
