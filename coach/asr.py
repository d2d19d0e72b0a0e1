"""
Whisper ASR wrapper (lazy-loaded) for in-memory audio windows.
"""
from __future__ import annotations
import librosa
import numpy as np
import whisper
from coach.config import Settings

_model = None

def _ensure_model(settings: Settings):
    global _model
    if _model is None:
        _model = whisper.load_model(settings.WHISPER_MODEL, device=settings.DEVICE)
    return _model

def transcribe_window(audio: np.ndarray, settings: Settings) -> str:
    """
    Transcribe a mono float32 window sampled at AUDIO_SAMPLE_RATE.

    - Uses device from Settings (cpu/cuda)
    - Disables fp16 on CPU to avoid the 'FP16 is not supported on CPU' warning
    """
    model = _ensure_model(settings)

    audio = np.asarray(audio, dtype=np.float32).reshape(-1)
    if settings.AUDIO_SAMPLE_RATE != whisper.audio.SAMPLE_RATE:
        audio = librosa.resample(audio, orig_sr=settings.AUDIO_SAMPLE_RATE, target_sr=whisper.audio.SAMPLE_RATE)

    use_fp16 = settings.DEVICE == "cuda"  # FP16 only makes sense on GPU
    result = model.transcribe(audio, fp16=use_fp16, language="en")

    return (result.get("text") or "").strip()
