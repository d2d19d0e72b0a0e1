"""
Voice channel: serializes critique delivery so only one is ever audible.

    idle -> pending -> speaking -> idle
              \\______________________/  (fail-safe timeout / playback error)

`pending` covers synthesis and network latency. A fail-safe timer forces the
channel back to idle if playback never starts, so the arbiter is never
blocked by a hung synthesis call.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, List, Optional, Protocol

from coach.errors import VoiceBusyError
from coach.models import CritiqueEvent, VoiceState
from coach.timers import SingleSlotTimer

logger = logging.getLogger(__name__)


class Speaker(Protocol):
    async def play(self, text: str, on_started: Callable[[], None]) -> None:
        """Synthesize and play `text`; call `on_started` once audio is audible; return at end."""
        ...


class VoiceChannel:
    def __init__(self, speaker: Speaker, failsafe_seconds: float = 3.0):
        self.speaker = speaker
        self.failsafe_seconds = float(failsafe_seconds)
        self._state = VoiceState.IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._failsafe = SingleSlotTimer("speech-failsafe")
        self._idle_listeners: List[Callable[[], None]] = []
        self.current: Optional[CritiqueEvent] = None

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not VoiceState.IDLE

    def add_idle_listener(self, listener: Callable[[], None]) -> None:
        self._idle_listeners.append(listener)

    def speak(self, critique: CritiqueEvent) -> asyncio.Task:
        """Start delivering `critique`. Raises VoiceBusyError unless idle."""
        if self._state is not VoiceState.IDLE:
            raise VoiceBusyError(f"voice channel is {self._state.value}")
        self._generation += 1
        gen = self._generation
        self._state = VoiceState.PENDING
        self.current = critique
        self._failsafe.schedule(self.failsafe_seconds, lambda: self._on_failsafe(gen))
        logger.info(f"[voice] speaking critique id={critique.id}")
        self._task = asyncio.get_running_loop().create_task(self._deliver(critique, gen))
        return self._task

    async def stop(self) -> None:
        """Stop any in-flight audio and force idle."""
        task = self._task
        self._generation += 1
        self._failsafe.cancel()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._to_idle("stopped")

    async def _deliver(self, critique: CritiqueEvent, gen: int) -> None:
        try:
            await self.speaker.play(critique.text, lambda: self._on_started(gen))
            if gen == self._generation:
                self._to_idle("finished")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[voice] playback failed id={critique.id}")
            if gen == self._generation:
                self._to_idle("playback error")

    def _on_started(self, gen: int) -> None:
        if gen != self._generation or self._state is not VoiceState.PENDING:
            return
        self._failsafe.cancel()
        self._state = VoiceState.SPEAKING
        logger.debug("[voice] playback started")

    def _on_failsafe(self, gen: int) -> None:
        if gen != self._generation or self._state is not VoiceState.PENDING:
            return
        logger.warning(f"[voice] playback did not start within {self.failsafe_seconds}s; forcing idle")
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._to_idle("fail-safe")

    def _to_idle(self, reason: str) -> None:
        self._failsafe.cancel()
        was = self._state
        self._state = VoiceState.IDLE
        self.current = None
        if was is VoiceState.IDLE:
            return
        logger.debug(f"[voice] {was.value} -> idle ({reason})")
        for listener in list(self._idle_listeners):
            try:
                listener()
            except Exception:
                logger.exception("[voice] idle listener failed")
