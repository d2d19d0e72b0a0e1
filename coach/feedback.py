"""
Session feedback log: append-only record of delivered critiques plus the
post-session summaries derived from it.
"""
from __future__ import annotations
import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from coach.models import (
    FeedbackEntry,
    FeedbackEntryInput,
    FeedbackSession,
    OverallSummary,
    SectionRange,
    SectionSummary,
)

logger = logging.getLogger(__name__)

Listener = Callable[[FeedbackSession], None]


class SessionFeedbackLog:
    """JSON-file backed feedback session. Storage failures are logged, never raised."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def load(self) -> FeedbackSession:
        if not self.path.exists():
            return FeedbackSession()
        try:
            return FeedbackSession.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError):
            logger.warning(f"[feedback] unreadable log at {self.path}; starting empty")
            return FeedbackSession()

    def start_session(self) -> FeedbackSession:
        with self._lock:
            session = self.load()
            if session.start_time is None:
                session.start_time = time.time()
                self._persist(session)
                self._notify(session)
            return session

    def append(self, entry: FeedbackEntryInput) -> FeedbackSession:
        with self._lock:
            session = self.load()
            data = entry.model_dump()
            data["section_title"] = infer_section_title(entry.section_title, entry.page_text, entry.page_number)
            record = FeedbackEntry(id=uuid.uuid4().hex, created_at=time.time(), **data)
            session = FeedbackSession(
                entries=[*session.entries, record],
                start_time=session.start_time if session.start_time is not None else time.time(),
            )
            self._persist(session)
            self._notify(session)
            logger.debug(f"[feedback] appended entry page={record.page_number} total={len(session.entries)}")
            return session

    def clear(self) -> FeedbackSession:
        with self._lock:
            session = FeedbackSession()
            self._persist(session)
            self._notify(session)
            return session

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _persist(self, session: FeedbackSession) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(session.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError:
            logger.exception(f"[feedback] failed to persist log to {self.path}")

    def _notify(self, session: FeedbackSession) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("[feedback] listener failed")


def infer_section_title(provided: Optional[str], page_text: Optional[str], page_number: int) -> str:
    """Explicit title, else first non-empty line of the page (80 chars), else 'Page N'."""
    if provided and provided.strip():
        return provided.strip()
    if page_text:
        for line in page_text.splitlines():
            if line.strip():
                return line.strip()[:80]
    return f"Page {page_number}"


def derive_section_summaries(
    session: FeedbackSession,
    sections_map: Optional[List[SectionRange]] = None,
) -> List[SectionSummary]:
    """Group entries by section; sections with no entries are dropped."""
    sections: Dict[str, SectionSummary] = {}
    for section in sections_map or []:
        sections[section.title] = SectionSummary(
            section_title=section.title,
            pages=list(range(section.start_page, section.end_page + 1)),
        )

    for entry in session.entries:
        title = entry.section_title
        for section in sections_map or []:
            if section.start_page <= entry.page_number <= section.end_page:
                title = section.title
                break

        summary = sections.get(title)
        if summary is None:
            sections[title] = SectionSummary(
                section_title=title,
                pages=[entry.page_number],
                entries=[entry],
                latest_at=entry.created_at,
            )
            continue
        if entry.page_number not in summary.pages:
            summary.pages.append(entry.page_number)
            summary.pages.sort()
        summary.entries.append(entry)
        summary.latest_at = max(summary.latest_at, entry.created_at)

    return sorted(
        (s for s in sections.values() if s.entries),
        key=lambda s: (min(s.pages), s.latest_at),
    )


def derive_overall_summary(session: FeedbackSession) -> OverallSummary:
    entries = session.entries
    return OverallSummary(
        total_entries=len(entries),
        unique_pages=len({e.page_number for e in entries}),
        latest_at=max((e.created_at for e in entries), default=None),
    )
