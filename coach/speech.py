"""
Critique playback: ElevenLabs streaming synthesis into a sounddevice output stream.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

import httpx
import sounddevice as sd

from coach.config import Settings

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE = 2  # pcm_* output is 16-bit mono


class ElevenLabsSpeaker:
    """Streams PCM from ElevenLabs and plays it once a short buffer has filled."""

    URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}/stream"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.s = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    def _open_output(self):
        stream = sd.RawOutputStream(samplerate=self.s.TTS_SAMPLE_RATE, channels=1, dtype="int16")
        stream.start()
        return stream

    async def play(self, text: str, on_started: Callable[[], None]) -> None:
        sr = self.s.TTS_SAMPLE_RATE
        prebuffer = int(sr * BYTES_PER_SAMPLE * self.s.PLAYBACK_BUFFER_SECONDS)
        url = self.URL.format(voice_id=self.s.ELEVENLABS_VOICE_ID)
        headers = {"xi-api-key": self.s.ELEVENLABS_API_KEY or "", "Content-Type": "application/json"}
        payload = {"text": text, "model_id": self.s.ELEVENLABS_MODEL}

        loop = asyncio.get_running_loop()
        pending = bytearray()
        stream = None

        async def flush() -> None:
            nonlocal stream
            if stream is None:
                stream = self._open_output()
                on_started()
            cut = len(pending) - (len(pending) % BYTES_PER_SAMPLE)
            if cut <= 0:
                return
            data = bytes(pending[:cut])
            del pending[:cut]
            await loop.run_in_executor(None, stream.write, data)

        try:
            async with self._get_client().stream(
                "POST", url, headers=headers, json=payload, params={"output_format": f"pcm_{sr}"}
            ) as resp:
                resp.raise_for_status()
                async for chunk in resp.aiter_bytes():
                    pending.extend(chunk)
                    if stream is not None or len(pending) >= prebuffer:
                        await flush()
            if pending:
                # a dangling odd byte is dropped by flush
                await flush()
            elif stream is None:
                logger.warning("[speech] synthesis returned no audio")
            if stream is not None:
                # drains the device buffer, which blocks until playback ends
                await loop.run_in_executor(None, stream.stop)
        except asyncio.CancelledError:
            if stream is not None:
                stream.abort()
            raise
        finally:
            if stream is not None:
                stream.close()

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
