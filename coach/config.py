"""
Configuration for the live coaching session.
"""
from pydantic import BaseModel
import os

class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    DEVICE: str = (os.getenv("DEVICE", "cpu") or "cpu")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Analysis scheduling
    SILENCE_WINDOW: float = float(os.getenv("SILENCE_WINDOW", "2.0"))
    IMMEDIATE_TRIGGER_CHARS: int = int(os.getenv("IMMEDIATE_TRIGGER_CHARS", "150"))

    # Suppression gate
    MIN_ANALYSIS_INTERVAL: float = float(os.getenv("MIN_ANALYSIS_INTERVAL", "1.5"))
    MIN_UTTERANCE_CHARS: int = int(os.getenv("MIN_UTTERANCE_CHARS", "24"))
    CRITIQUE_COOLDOWN: float = float(os.getenv("CRITIQUE_COOLDOWN", "3.0"))
    ORACLE_MAX_CHARS: int = int(os.getenv("ORACLE_MAX_CHARS", "500"))
    DECK_SUMMARY_FALLBACK_CHARS: int = int(os.getenv("DECK_SUMMARY_FALLBACK_CHARS", "1200"))

    # Judgment oracle (OpenAI-compatible chat completions)
    ORACLE_BASE_URL: str = os.getenv("ORACLE_BASE_URL", "https://api.openai.com/v1")
    ORACLE_MODEL: str = os.getenv("ORACLE_MODEL", "gpt-4.1-mini")
    ORACLE_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    ORACLE_TEMPERATURE: float = float(os.getenv("ORACLE_TEMPERATURE", "0.8"))
    ORACLE_TIMEOUT: float = float(os.getenv("ORACLE_TIMEOUT", "15"))

    # Voice output
    SPEECH_FAILSAFE: float = float(os.getenv("SPEECH_FAILSAFE", "3.0"))
    ELEVENLABS_API_KEY: str | None = os.getenv("ELEVENLABS_API_KEY")
    ELEVENLABS_VOICE_ID: str = os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
    ELEVENLABS_MODEL: str = os.getenv("ELEVENLABS_MODEL", "eleven_turbo_v2_5")
    TTS_SAMPLE_RATE: int = int(os.getenv("TTS_SAMPLE_RATE", "16000"))
    PLAYBACK_BUFFER_SECONDS: float = float(os.getenv("PLAYBACK_BUFFER_SECONDS", "0.5"))

    # Session history
    FEEDBACK_LOG_PATH: str = os.getenv("FEEDBACK_LOG_PATH", "output/feedback.json")

    # Camera emotion source
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    EMOTION_INTERVAL: float = float(os.getenv("EMOTION_INTERVAL", "0.5"))
    EMOTION_SMOOTH_ALPHA: float = float(os.getenv("EMOTION_SMOOTH_ALPHA", "0.6"))

    # Microphone transcription source
    WHISPER_MODEL: str = os.getenv("WHISPER_MODEL", "base")
    AUDIO_SAMPLE_RATE: int = int(os.getenv("AUDIO_SAMPLE_RATE", "16000"))
    STT_PARTIAL_INTERVAL: float = float(os.getenv("STT_PARTIAL_INTERVAL", "1.0"))
    STT_END_SILENCE: float = float(os.getenv("STT_END_SILENCE", "0.8"))
    STT_SILENCE_RMS: float = float(os.getenv("STT_SILENCE_RMS", "0.01"))

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize DEVICE: strip comments/extra words, lower-case, validate
        dev = (self.DEVICE or "cpu").strip().split()[0].lower()
        if dev not in ("cpu", "cuda"):
            dev = "cpu"
        object.__setattr__(self, "DEVICE", dev)
