from coach.transcript import TranscriptAccumulator, UtteranceBuffer


def test_cumulative_partials_collapse_to_final():
    acc = TranscriptAccumulator()
    acc.ingest("the mar", False)
    acc.ingest("the market", False)
    acc.ingest("the market is huge", True)
    assert acc.buffer.text == "the market is huge"
    assert acc.buffer.partial_cache == ""


def test_returns_only_new_suffix():
    acc = TranscriptAccumulator()
    assert acc.ingest("we sell", False) == "we sell"
    assert acc.ingest("we sell shoes", False) == " shoes"
    # repeated hypothesis adds nothing
    assert acc.ingest("we sell shoes", False) == ""
    assert acc.buffer.text == "we sell shoes"


def test_new_utterance_after_final_is_space_joined():
    acc = TranscriptAccumulator()
    acc.ingest("the market is huge", True)
    acc.ingest("and growing", False)
    acc.ingest("and growing fast", True)
    assert acc.buffer.text == "the market is huge and growing fast"


def test_rewritten_hypothesis_is_appended_whole():
    acc = TranscriptAccumulator()
    acc.ingest("hello word", False)
    delta = acc.ingest("hello world", False)
    assert delta == "hello world"
    assert acc.buffer.text == "hello word hello world"


def test_blank_hypotheses_are_ignored():
    acc = TranscriptAccumulator()
    acc.ingest("first", False)
    assert acc.ingest("   ", True) == ""
    assert acc.ingest("", False) == ""
    assert acc.buffer.text == "first"
    assert acc.buffer.partial_cache == "first"


def test_reset_keeps_partial_cache():
    acc = TranscriptAccumulator()
    acc.ingest("hello there", False)
    acc.buffer.reset()
    acc.ingest("hello there friend", False)
    assert acc.buffer.text == "friend"


def test_watermarks_clamp_and_never_move_back():
    buf = UtteranceBuffer(text="abcdef")
    buf.advance(4)
    assert buf.delta() == "ef"
    assert buf.unconsumed_chars() == 2
    buf.advance(2)
    assert buf.analyzed_length == 4 and buf.consumed_index == 4
    buf.advance(99)
    assert buf.analyzed_length == 6
    assert not buf.has_new_content()
    buf.text += "gh"
    assert buf.has_new_content()
    assert buf.delta() == "gh"
