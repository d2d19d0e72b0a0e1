"""Run a live coaching session against the local microphone and camera.

Usage:
    python -m scripts.live_session --deck deck.txt

The deck file holds one slide per page, pages separated by form feeds (\\f).
Type a page number and Enter to change slides; Ctrl+C to quit.
"""
from __future__ import annotations
import argparse
import asyncio
import logging

from coach.camera import CameraEmotionSource
from coach.config import Settings
from coach.feedback import SessionFeedbackLog
from coach.models import SlideDeck
from coach.oracle import OpenAIOracle
from coach.session import CoachSession
from coach.speech import ElevenLabsSpeaker
from coach.stt import MicrophoneTranscriber

logger = logging.getLogger(__name__)


def read_deck(path: str) -> list[str]:
    with open(path, "r", encoding="utf-8") as f:
        return [page.strip() for page in f.read().split("\f")]


async def run(settings: Settings, deck_path: str | None) -> None:
    oracle = OpenAIOracle(settings)
    session = CoachSession(
        settings,
        oracle=oracle,
        speaker=ElevenLabsSpeaker(settings),
        feedback_log=SessionFeedbackLog(settings.FEEDBACK_LOG_PATH),
        transcript_source=MicrophoneTranscriber(settings),
        emotion_source=CameraEmotionSource(settings),
    )
    async with session:
        for w in session.warnings:
            print(f"⚠️  {w}")
        if deck_path:
            pages = read_deck(deck_path)
            summary = await oracle.summarize_deck("\n".join(pages))
            session.load_deck(SlideDeck(page_texts=pages, summary=summary))
            print(f"Loaded {len(pages)} slides")

        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, input, "page> ")
            line = line.strip()
            if line.isdigit() and int(line) >= 1:
                session.on_page_change(int(line))
            elif line:
                print(session.status().model_dump_json(indent=2))


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--deck", default=None, help="Slide text file, pages separated by form feeds")
    args = p.parse_args()

    s = Settings()
    logging.basicConfig(level=getattr(logging, s.LOG_LEVEL.upper(), logging.INFO))
    try:
        asyncio.run(run(s, args.deck))
    except (KeyboardInterrupt, EOFError):
        pass


if __name__ == '__main__':
    main()
