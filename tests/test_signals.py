from coach.models import EmotionSnapshot, SlideDeck
from coach.signals import SignalWindow, format_emotion_summary


def test_emotion_summary_lists_dominant_and_two_secondary():
    snap = EmotionSnapshot.from_scores({"happy": 0.7, "neutral": 0.2, "sad": 0.06, "angry": 0.04}, captured_at=1.0)
    assert format_emotion_summary(snap) == "Dominant: happy (70%) | Secondary: neutral (20%), sad (6%)"


def test_emotion_summary_without_face():
    assert format_emotion_summary(None) == "No face detected"


def test_latest_signal_wins():
    w = SignalWindow()
    a = EmotionSnapshot.from_scores({"neutral": 0.9}, captured_at=1.0)
    b = EmotionSnapshot.from_scores({"fearful": 0.8}, captured_at=2.0)
    w.update_emotion(a)
    w.update_emotion(b)
    w.update_page(3)
    frame = w.current()
    assert frame.emotion is b
    assert frame.page == 3
    w.update_emotion(None)
    assert w.current().emotion is None


def test_slide_context_uses_deck_and_falls_back_to_leading_text():
    w = SignalWindow(fallback_chars=10)
    w.update_deck(SlideDeck(page_texts=["Problem slide", "Solution slide"]))
    w.update_page(2)
    ctx = w.slide_context()
    assert ctx.current_page == 2
    assert ctx.page_text == "Solution slide"
    assert ctx.deck_summary == "Problem sl"

    w.update_page(9)
    assert w.slide_context().page_text == ""
