"""
Camera emotion source.

Samples webcam frames every EMOTION_INTERVAL seconds, runs DeepFace emotion
analysis when exactly one face is in view, smooths the probabilities with an
EMA and pushes EmotionSnapshot objects (None when no single face is found).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import cv2

from coach.config import Settings
from coach.errors import SourceUnavailableError
from coach.models import EmotionSnapshot

logger = logging.getLogger(__name__)

# DeepFace label -> canonical label
DEEPFACE_LABELS = {
    "angry": "angry",
    "disgust": "disgusted",
    "fear": "fearful",
    "happy": "happy",
    "sad": "sad",
    "surprise": "surprised",
    "neutral": "neutral",
}


class ProbEMA:
    """Exponential moving average for emotion probability dicts."""
    def __init__(self, alpha: float = 0.5):
        self.alpha = float(alpha)
        self.state: Optional[dict] = None

    def update(self, probs: Optional[dict]) -> Optional[dict]:
        if not probs:
            return self.state
        if self.state is None:
            self.state = {k: float(v) for k, v in probs.items()}
            return self.state
        out: dict[str, float] = {}
        keys = set(self.state.keys()) | set(probs.keys())
        for k in keys:
            pv = float(probs.get(k, 0.0))
            sv = float(self.state.get(k, 0.0))
            out[k] = self.alpha * pv + (1.0 - self.alpha) * sv
        self.state = out
        return self.state

    def reset(self) -> None:
        self.state = None


def normalize_scores(raw: dict) -> dict[str, float]:
    """DeepFace reports percentages keyed by its own labels; map to canonical 0..1."""
    out: dict[str, float] = {}
    for k, v in (raw or {}).items():
        label = DEEPFACE_LABELS.get(str(k).lower())
        if label is None:
            continue
        out[label] = max(0.0, min(1.0, float(v) / 100.0))
    return out


def _is_face(r: dict) -> bool:
    reg = (r or {}).get("region") or {}
    if int(reg.get("w", 0)) <= 0 or int(reg.get("h", 0)) <= 0:
        return False
    conf = r.get("face_confidence")
    return conf is None or float(conf) > 0.0


class CameraEmotionSource:
    """Background camera loop feeding emotion snapshots to the session."""
    def __init__(self, settings: Settings):
        self.s = settings
        self.ema = ProbEMA(settings.EMOTION_SMOOTH_ALPHA)
        self._emit: Optional[Callable[[Optional[EmotionSnapshot]], None]] = None
        self._cap = None
        self._detector = None
        self._run = False
        self._thread: Optional[threading.Thread] = None

    # ---- lifecycle ----
    def start(self, emit: Callable[[Optional[EmotionSnapshot]], None]) -> None:
        try:
            from deepface import DeepFace  # lazy import to avoid loading TF at module import time
        except Exception as e:
            raise SourceUnavailableError(f"DeepFace import failed: {e}") from e

        cap = cv2.VideoCapture(self.s.CAMERA_INDEX)
        if not cap.isOpened():
            cap.release()
            raise SourceUnavailableError(f"Could not open camera index {self.s.CAMERA_INDEX}")

        self._detector = DeepFace
        self._cap = cap
        self._emit = emit
        self._run = True
        self._thread = threading.Thread(target=self._loop, name="camera", daemon=True)
        self._thread.start()
        logger.info(f"[camera] capture started index={self.s.CAMERA_INDEX}")

    def stop(self) -> None:
        self._run = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    # ---- loop ----
    def _loop(self):
        next_t = 0.0
        while self._run:
            ok, frame = self._cap.read()
            if not ok:
                time.sleep(0.1)
                continue
            tnow = time.time()
            if tnow >= next_t:
                snapshot = self.analyze_frame(frame, tnow)
                if self._emit is not None:
                    self._emit(snapshot)
                next_t = tnow + self.s.EMOTION_INTERVAL
            time.sleep(0.01)

    def analyze_frame(self, frame, captured_at: float) -> Optional[EmotionSnapshot]:
        """One DeepFace pass over a frame; None unless exactly one face is found."""
        try:
            res = self._detector.analyze(
                frame,
                actions=["emotion"],
                enforce_detection=False,
                detector_backend="opencv",
            )
        except Exception:
            logger.exception("[camera] emotion inference failed")
            return None
        res = res if isinstance(res, list) else [res]
        faces = [r for r in res if _is_face(r)]
        if len(faces) != 1:
            self.ema.reset()
            return None
        scores = normalize_scores(faces[0].get("emotion") or {})
        if not scores:
            return None
        smoothed = self.ema.update(scores)
        return EmotionSnapshot.from_scores(smoothed, captured_at=captured_at)
