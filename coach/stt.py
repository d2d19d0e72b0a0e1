"""
Microphone transcription source.

Captures mic audio with sounddevice, re-transcribes the growing utterance
every STT_PARTIAL_INTERVAL seconds (partial hypotheses) and emits a final
hypothesis once STT_END_SILENCE seconds of trailing low RMS close the
utterance.
"""
from __future__ import annotations
import logging
import threading
import time
from typing import Callable, List, Optional

import librosa
import numpy as np
import sounddevice as sd

from coach.asr import transcribe_window
from coach.config import Settings
from coach.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

HOP = 512
FRAME = 2048


def trailing_silence_seconds(audio: np.ndarray, sr: int, threshold: float) -> tuple[float, bool]:
    """Return (seconds of trailing low-RMS audio, whether any frame is above threshold)."""
    if audio.size < FRAME:
        return 0.0, False
    rms = librosa.feature.rms(y=audio, frame_length=FRAME, hop_length=HOP)[0]
    loud = rms >= threshold
    if not loud.any():
        return float(audio.shape[0]) / sr, False
    last_loud = int(np.flatnonzero(loud)[-1])
    quiet_frames = len(rms) - 1 - last_loud
    return quiet_frames * HOP / float(sr), True


class MicrophoneTranscriber:
    """Emits (text, is_final) hypotheses from the default input device."""

    def __init__(self, settings: Settings, transcribe: Callable[[np.ndarray, Settings], str] = transcribe_window):
        self.s = settings
        self.transcribe = transcribe
        self._emit: Optional[Callable[[str, bool], None]] = None
        self._lock = threading.Lock()
        self._incoming: List[np.ndarray] = []
        self._utterance: List[np.ndarray] = []
        self._last_partial_t = 0.0
        self._last_partial = ""
        self._run = False
        self._thread: Optional[threading.Thread] = None
        self._stream = None

    # ---- lifecycle ----
    def start(self, emit: Callable[[str, bool], None]) -> None:
        self._emit = emit
        sr = self.s.AUDIO_SAMPLE_RATE
        try:
            self._stream = sd.InputStream(
                callback=self._on_audio, channels=1, samplerate=sr, blocksize=int(sr * 0.1), dtype="float32"
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise SourceUnavailableError(f"microphone unavailable: {e}") from e
        self._run = True
        self._thread = threading.Thread(target=self._loop, name="stt", daemon=True)
        self._thread.start()
        logger.info(f"[stt] microphone capture started sr={sr}")

    def stop(self) -> None:
        self._run = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None

    # ---- capture ----
    def _on_audio(self, indata, frames, time_info, status):
        with self._lock:
            self._incoming.append(indata.copy().astype(np.float32).reshape(-1))

    def _loop(self):
        while self._run:
            try:
                self.step(time.time())
            except Exception:
                logger.exception("[stt] transcription step failed")
            time.sleep(0.05)

    def step(self, now: float) -> None:
        """Fold captured audio into the utterance and emit at most one hypothesis."""
        with self._lock:
            self._utterance.extend(self._incoming)
            self._incoming = []
        if not self._utterance:
            return

        sr = self.s.AUDIO_SAMPLE_RATE
        audio = np.concatenate(self._utterance, axis=0)
        quiet, has_speech = trailing_silence_seconds(audio, sr, self.s.STT_SILENCE_RMS)

        if not has_speech:
            # keep only a short lead-in so pure silence never accumulates
            keep = int(sr * self.s.STT_END_SILENCE)
            self._utterance = [audio[-keep:]] if keep > 0 else []
            return

        if quiet >= self.s.STT_END_SILENCE:
            text = self.transcribe(audio, self.s)
            self._utterance = []
            self._last_partial = ""
            if text and self._emit is not None:
                self._emit(text, True)
            return

        if now - self._last_partial_t >= self.s.STT_PARTIAL_INTERVAL:
            self._last_partial_t = now
            text = self.transcribe(audio, self.s)
            # Whisper can rewrite earlier words; only forward partials that extend the last one
            if text and text.startswith(self._last_partial) and self._emit is not None:
                self._last_partial = text
                self._emit(text, False)
