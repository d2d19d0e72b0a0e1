"""
CLI to summarize a session feedback log -> JSON.
"""
from __future__ import annotations
import argparse, json, os
from coach.config import Settings
from coach.feedback import SessionFeedbackLog, derive_overall_summary, derive_section_summaries
from coach.models import SectionRange

def summarize(log_path: str, sections_path: str | None = None) -> dict:
    session = SessionFeedbackLog(log_path).load()
    sections = None
    if sections_path:
        with open(sections_path, "r", encoding="utf-8") as f:
            sections = [SectionRange.model_validate(s) for s in json.load(f)]
    return {
        "sections": [s.model_dump(mode="json") for s in derive_section_summaries(session, sections)],
        "overall": derive_overall_summary(session).model_dump(mode="json"),
    }

def main(argv=None):
    settings = Settings()
    p = argparse.ArgumentParser()
    p.add_argument("--log", default=settings.FEEDBACK_LOG_PATH, help="Path to feedback log JSON")
    p.add_argument("--sections", default=None, help="Optional JSON list of {title, start_page, end_page}")
    p.add_argument("--out", default="output/summary.json", help="Path to output JSON")
    args = p.parse_args(argv)

    result = summarize(args.log, args.sections)
    print(json.dumps(result, indent=2, ensure_ascii=False))

    # Also write to file
    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(result, f, indent=2, ensure_ascii=False)
    print(f"✅ Summary written to {args.out}")

if __name__ == "__main__":
    main()
