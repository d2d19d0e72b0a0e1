import json

from coach.feedback import (
    SessionFeedbackLog,
    derive_overall_summary,
    derive_section_summaries,
    infer_section_title,
)
from coach.models import FeedbackEntryInput, FeedbackSession, SectionRange


def _entry(page, critique="Be specific.", **kw):
    return FeedbackEntryInput(page_number=page, critique=critique, **kw)


def test_append_persists_and_infers_title(tmp_path):
    path = tmp_path / "out" / "feedback.json"
    log = SessionFeedbackLog(path)
    log.append(_entry(2, page_text="\n  Market Size  \nTAM $4B"))
    log.append(_entry(5))

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert len(on_disk["entries"]) == 2
    assert on_disk["start_time"] is not None

    session = SessionFeedbackLog(path).load()
    assert [e.section_title for e in session.entries] == ["Market Size", "Page 5"]
    assert all(e.id and e.created_at for e in session.entries)


def test_explicit_section_title_wins():
    assert infer_section_title("  Team ", "Our team", 3) == "Team"
    assert infer_section_title(None, "x" * 100, 3) == "x" * 80
    assert infer_section_title("", "   \n", 7) == "Page 7"


def test_missing_or_corrupt_log_loads_empty(tmp_path):
    assert SessionFeedbackLog(tmp_path / "nope.json").load().entries == []
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    log = SessionFeedbackLog(bad)
    assert log.load().entries == []
    # appending over a corrupt file starts a fresh session
    assert len(log.append(_entry(1)).entries) == 1


def test_start_session_stamps_once(tmp_path):
    log = SessionFeedbackLog(tmp_path / "f.json")
    first = log.start_session().start_time
    second = log.start_session().start_time
    assert first is not None and first == second


def test_clear_and_subscribers(tmp_path):
    log = SessionFeedbackLog(tmp_path / "f.json")
    seen = []
    unsubscribe = log.subscribe(lambda s: seen.append(len(s.entries)))
    log.append(_entry(1))
    log.clear()
    unsubscribe()
    log.append(_entry(2))
    assert seen == [1, 0]
    assert len(log.load().entries) == 1


def test_section_summaries_group_by_title_and_sort(tmp_path):
    log = SessionFeedbackLog(tmp_path / "f.json")
    log.append(_entry(4, page_text="Traction"))
    log.append(_entry(1, page_text="Problem"))
    log.append(_entry(4, critique="Show retention.", page_text="Traction"))
    sections = derive_section_summaries(log.load())
    assert [s.section_title for s in sections] == ["Problem", "Traction"]
    assert len(sections[1].entries) == 2
    assert sections[1].pages == [4]


def test_section_map_assigns_pages_and_drops_empty_sections(tmp_path):
    log = SessionFeedbackLog(tmp_path / "f.json")
    log.append(_entry(2))
    log.append(_entry(3))
    sections_map = [
        SectionRange(title="Intro", start_page=1, end_page=3),
        SectionRange(title="Ask", start_page=9, end_page=10),
    ]
    sections = derive_section_summaries(log.load(), sections_map)
    assert [s.section_title for s in sections] == ["Intro"]
    assert sections[0].pages == [1, 2, 3]
    assert len(sections[0].entries) == 2


def test_overall_summary(tmp_path):
    assert derive_overall_summary(FeedbackSession()).latest_at is None
    log = SessionFeedbackLog(tmp_path / "f.json")
    log.append(_entry(1))
    log.append(_entry(1))
    session = log.append(_entry(6))
    overall = derive_overall_summary(session)
    assert overall.total_entries == 3
    assert overall.unique_pages == 2
    assert overall.latest_at == session.entries[-1].created_at
