"""
Coaching session controller.

Owns the utterance buffer, signal window, scheduler, arbiter and voice
channel for one live session and exposes the explicit entry points the
outside world talks to. Everything here runs on one asyncio event loop;
threaded sources (camera, microphone) are marshalled onto it.
"""
from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, Callable, List, Optional, Protocol, Set

from coach.arbiter import InterruptArbiter
from coach.config import Settings
from coach.errors import SourceUnavailableError
from coach.feedback import SessionFeedbackLog
from coach.models import CritiqueEvent, EmotionSnapshot, FeedbackEntryInput, SessionStatus, SlideDeck
from coach.oracle import Oracle
from coach.scheduler import AnalysisScheduler
from coach.signals import SignalWindow
from coach.transcript import TranscriptAccumulator, UtteranceBuffer
from coach.voice import Speaker, VoiceChannel

logger = logging.getLogger(__name__)


class SignalSource(Protocol):
    def start(self, emit: Callable[..., None]) -> None: ...
    def stop(self) -> None: ...


class CoachSession:
    def __init__(
        self,
        settings: Settings,
        oracle: Oracle,
        speaker: Speaker,
        feedback_log: SessionFeedbackLog,
        transcript_source: Optional[SignalSource] = None,
        emotion_source: Optional[SignalSource] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.s = settings
        self.oracle = oracle
        self.speaker = speaker
        self.feedback = feedback_log
        self.transcript_source = transcript_source
        self.emotion_source = emotion_source

        self.buffer = UtteranceBuffer()
        self.accumulator = TranscriptAccumulator(self.buffer)
        self.signals = SignalWindow(settings.DECK_SUMMARY_FALLBACK_CHARS)
        self.voice = VoiceChannel(speaker, settings.SPEECH_FAILSAFE)
        self.arbiter = InterruptArbiter(settings, self.buffer, self.signals, self.voice, oracle, clock=clock)
        self.scheduler = AnalysisScheduler(
            self.on_timer_fired,
            silence_window=settings.SILENCE_WINDOW,
            immediate_chars=settings.IMMEDIATE_TRIGGER_CHARS,
            is_blocked=lambda: self.voice.busy,
        )
        self.arbiter.add_critique_listener(self._record_critique)
        self.voice.add_idle_listener(self._on_voice_idle)
        self.arbiter.add_analysis_listener(self._on_analysis_done)

        self.running = False
        self.started_at: Optional[float] = None
        self.warnings: List[str] = []
        self._stopped = False
        self._started_sources: List[SignalSource] = []
        self._writes: Set[asyncio.Future] = set()

    # ---- entry points ----
    def ingest_transcript(self, text: str, is_final: bool) -> None:
        if self._stopped or not (text or "").strip():
            return
        delta = self.accumulator.ingest(text, is_final)
        self.scheduler.on_utterance_growth(delta, self.buffer.unconsumed_chars())

    def ingest_emotion(self, snapshot: Optional[EmotionSnapshot]) -> None:
        if self._stopped:
            return
        self.signals.update_emotion(snapshot)

    def on_page_change(self, page_number: int) -> None:
        if self._stopped:
            return
        self.signals.update_page(page_number)

    def load_deck(self, deck: SlideDeck) -> None:
        self.signals.update_deck(deck)

    def on_timer_fired(self) -> Optional[asyncio.Task]:
        if self._stopped:
            return None
        return self.arbiter.attempt_analysis()

    # ---- lifecycle ----
    async def start(self) -> "CoachSession":
        if self.running:
            return self
        self.running = True
        self._stopped = False
        self.started_at = time.time()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.feedback.start_session)

        wiring = (
            ("microphone", self.transcript_source, self.ingest_transcript),
            ("camera", self.emotion_source, self.ingest_emotion),
        )
        try:
            for name, source, entry in wiring:
                if source is None or self._stopped:
                    continue
                try:
                    await loop.run_in_executor(None, source.start, self._threadsafe(loop, entry))
                except SourceUnavailableError as e:
                    logger.warning(f"[session] {name} unavailable, continuing without it: {e}")
                    self.warnings.append(f"{name} unavailable: {e}")
                    continue
                if self._stopped:
                    # stop() ran while this source was starting and has already released the others
                    await loop.run_in_executor(None, source.stop)
                    logger.info(f"[session] stopped during start; released {name}")
                    return self
                self._started_sources.append(source)
        except BaseException:
            await self.stop()
            raise
        logger.info(f"[session] started sources={len(self._started_sources)} warnings={len(self.warnings)}")
        return self

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self.running = False
        loop = asyncio.get_running_loop()
        try:
            self.scheduler.cancel()
            await self.arbiter.cancel()
            await self.voice.stop()
        finally:
            for source in reversed(self._started_sources):
                try:
                    await loop.run_in_executor(None, source.stop)
                except Exception:
                    logger.exception("[session] source stop failed")
            self._started_sources = []
            if self._writes:
                await asyncio.gather(*self._writes, return_exceptions=True)
            for client in (self.oracle, self.speaker):
                aclose = getattr(client, "aclose", None)
                if aclose is None:
                    continue
                try:
                    await aclose()
                except Exception:
                    logger.exception("[session] client close failed")
            logger.info("[session] stopped")

    async def __aenter__(self) -> "CoachSession":
        return await self.start()

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def status(self) -> SessionStatus:
        return SessionStatus(
            running=self.running,
            started_at=self.started_at,
            voice_state=self.voice.state,
            analyzing=self.arbiter.analyzing,
            current_page=self.signals.current().page,
            transcript_chars=len(self.buffer.text),
            critiques=len(self.arbiter.critiques),
            warnings=list(self.warnings),
        )

    # ---- internals ----
    @staticmethod
    def _threadsafe(loop: asyncio.AbstractEventLoop, fn: Callable[..., None]) -> Callable[..., None]:
        def emit(*args):
            loop.call_soon_threadsafe(fn, *args)
        return emit

    def _record_critique(self, critique: CritiqueEvent) -> None:
        slide = self.signals.deck.context_for(critique.page_number, self.s.DECK_SUMMARY_FALLBACK_CHARS)
        entry = FeedbackEntryInput(
            page_number=critique.page_number,
            critique=critique.text,
            transcript=critique.transcript_context,
            page_text=slide.page_text or None,
            deck_summary=slide.deck_summary or None,
        )
        fut = asyncio.get_running_loop().run_in_executor(None, self.feedback.append, entry)
        self._writes.add(fut)
        fut.add_done_callback(self._write_done)

    def _on_voice_idle(self) -> None:
        # speech heard during playback was never scheduled; pick it up once the cooldown allows
        if self._stopped or not self.buffer.has_new_content():
            return
        since = self.arbiter.clock() - self.arbiter.last_critique_at
        self.scheduler.schedule_analysis(max(0.0, self.s.CRITIQUE_COOLDOWN - since))

    def _on_analysis_done(self, critique: Optional[CritiqueEvent]) -> None:
        # fires suppressed while the call was in flight are not replayed; re-arm for what arrived meanwhile
        if critique is not None or self._stopped or not self.buffer.has_new_content():
            return
        since = self.arbiter.clock() - self.arbiter.last_analysis_at
        self.scheduler.schedule_analysis(max(0.0, self.s.MIN_ANALYSIS_INTERVAL - since))

    def _write_done(self, fut: asyncio.Future) -> None:
        self._writes.discard(fut)
        if not fut.cancelled() and fut.exception() is not None:
            logger.error(f"[session] feedback append failed: {fut.exception()}")
