"""
Judgment oracle: request/verdict types and an OpenAI-compatible client.

The arbiter only depends on the `Oracle` protocol; verdicts are a tagged
union so callers never poke at an unchecked dict.
"""
from __future__ import annotations
import json
import logging
from typing import List, Literal, Optional, Protocol, Union

import httpx
from pydantic import BaseModel, Field

from coach.config import Settings
from coach.errors import OracleResponseError

logger = logging.getLogger(__name__)


class OracleRequest(BaseModel):
    transcript_delta: str
    emotion_summary: str
    page_text: str = ""
    deck_summary: str = ""
    previous_critiques: List[str] = Field(default_factory=list)


class InterruptVerdict(BaseModel):
    interrupt: Literal[True] = True
    message: str = Field(min_length=1)


class SilentVerdict(BaseModel):
    interrupt: Literal[False] = False


OracleVerdict = Union[InterruptVerdict, SilentVerdict]


class Oracle(Protocol):
    async def evaluate(self, request: OracleRequest) -> OracleVerdict: ...


def parse_verdict(raw: Union[str, dict]) -> OracleVerdict:
    """
    Parse an oracle reply of the form {"shouldInterrupt": bool, "roastMessage": str|null}.

    "message" is accepted in place of "roastMessage". An interrupt without a
    usable message is silent.

    Raises:
        OracleResponseError: not JSON, not an object, or missing/invalid flag.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise OracleResponseError(f"oracle reply is not JSON: {e}") from e
    if not isinstance(raw, dict):
        raise OracleResponseError(f"oracle reply is not an object: {type(raw).__name__}")

    flag = raw.get("shouldInterrupt", raw.get("interrupt"))
    if not isinstance(flag, bool):
        raise OracleResponseError(f"oracle reply has no boolean shouldInterrupt: {raw!r}")

    message = raw.get("roastMessage", raw.get("message"))
    if flag and isinstance(message, str) and message.strip():
        return InterruptVerdict(message=message.strip())
    return SilentVerdict()


SYSTEM_PROMPT = """
You are a sharp, observant venture capitalist pitch coach listening to a live pitch.
Interrupt the presenter only when they are doing a poor job.

You have access to:
1. The current slide and a short summary of the pitch deck.
2. What they just said.
3. Their facial expression analysis.

Interrupt when they:
- contradict the pitch deck,
- look visibly nervous, scared or sad,
- stutter, lean on filler words or ramble,
- sound boring or low energy.

If an interruption is warranted, write one or two short, direct sentences aimed at
the latest chunk of speech. Do not repeat earlier critiques. Otherwise do not interrupt.

Output JSON: {"shouldInterrupt": boolean, "roastMessage": string | null}
"""

SUMMARY_PROMPT = """
Summarize this pitch deck text into concise bullets (max 200 words).
Focus on: problem, solution, market, traction, business model, team, ask.
Keep it compact and factual.
"""


def build_user_prompt(request: OracleRequest) -> str:
    return (
        "PITCH DECK CONTEXT (current page first, then brief summary):\n"
        f"CURRENT PAGE:\n{request.page_text or '(no page text available)'}\n\n"
        f"DECK SUMMARY (short):\n{request.deck_summary or '(no deck summary available)'}\n\n"
        f"PRESENTER EMOTIONS:\n{request.emotion_summary}\n\n"
        f"PRESENTER TRANSCRIPT (last few seconds):\n\"{request.transcript_delta}\"\n\n"
        f"PREVIOUS CRITIQUES (do not repeat):\n{' | '.join(request.previous_critiques)}\n"
    )


def _looks_distressed(emotion_summary: str) -> bool:
    # only the dominant label counts; secondary labels carry low-probability noise
    s = emotion_summary.split("|", 1)[0].lower()
    return "fear" in s or "sad" in s


class OpenAIOracle:
    """Chat-completions oracle returning JSON verdicts."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.s = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.s.ORACLE_API_KEY:
                headers["Authorization"] = f"Bearer {self.s.ORACLE_API_KEY}"
            self._client = httpx.AsyncClient(
                base_url=self.s.ORACLE_BASE_URL,
                headers=headers,
                timeout=self.s.ORACLE_TIMEOUT,
            )
        return self._client

    async def _complete(self, messages: list[dict], **params) -> str:
        payload = {"model": self.s.ORACLE_MODEL, "messages": messages, **params}
        resp = await self._get_client().post("/chat/completions", json=payload)
        resp.raise_for_status()
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OracleResponseError(f"unexpected completion payload: {resp.text[:200]}") from e
        if not content:
            raise OracleResponseError("empty completion content")
        return content

    async def evaluate(self, request: OracleRequest) -> OracleVerdict:
        if len(request.transcript_delta) < 10 and not _looks_distressed(request.emotion_summary):
            return SilentVerdict()

        content = await self._complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(request)},
            ],
            response_format={"type": "json_object"},
            temperature=self.s.ORACLE_TEMPERATURE,
        )
        logger.debug(f"[oracle] raw verdict: {content!r}")
        return parse_verdict(content)

    async def summarize_deck(self, text: str) -> str:
        """Short factual deck summary; falls back to the deck's leading text on failure."""
        fallback = text[: self.s.DECK_SUMMARY_FALLBACK_CHARS]
        try:
            summary = await self._complete(
                [
                    {"role": "system", "content": SUMMARY_PROMPT},
                    {"role": "user", "content": text[:12000]},
                ],
                max_tokens=400,
                temperature=0.4,
            )
            return summary.strip() or fallback
        except Exception:
            logger.exception("[oracle] deck summary failed; using leading deck text")
            return fallback

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
