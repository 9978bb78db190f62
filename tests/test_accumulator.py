from livenotes.services.accumulator import (
    ChunkAccumulator,
    TranscriptEntry,
    build_tail_context,
    normalize_caption_text,
)


def make_acc(clock, **kwargs):
    emitted = []
    ids = iter(f"chunk_{i}" for i in range(1, 100))
    acc = ChunkAccumulator(
        lambda chunk, tail: emitted.append((chunk, tail)),
        clock=clock,
        id_factory=lambda now: next(ids),
        **kwargs,
    )
    acc.start_capture()
    return acc, emitted


def test_normalize_caption_text_strips_zero_width_and_whitespace():
    assert normalize_caption_text("  hello\u200b   world \n") == "hello world"
    assert normalize_caption_text("\ufeff\u2060") == ""
    assert normalize_caption_text(None) == ""


def test_captions_ignored_when_not_capturing(clock):
    acc = ChunkAccumulator(clock=clock)
    assert acc.handle_caption("the cell membrane is", media_time=1.0) is None
    assert acc.entries == []
    assert acc.chunk is None


def test_exact_duplicate_caption_never_creates_second_entry(clock):
    acc, _ = make_acc(clock)
    acc.handle_caption("osmosis is passive", media_time=1.0)
    acc.handle_caption("osmosis is passive", media_time=2.0)
    acc.handle_caption("  osmosis   is passive ", media_time=3.0)
    assert len(acc.entries) == 1
    assert acc.chunk.parts == ["osmosis is passive"]


def test_prefix_growth_replaces_entry_in_place(clock):
    acc, _ = make_acc(clock)
    acc.handle_caption("the cell membrane is", media_time=10.0)
    acc.handle_caption("the cell membrane is semi-permeable", media_time=11.5)
    assert len(acc.entries) == 1
    assert acc.entries[0].text == "the cell membrane is semi-permeable"
    assert acc.entries[0].end_time == 11.5
    assert acc.chunk.parts == ["the cell membrane is semi-permeable"]
    assert acc.chunk.text == "the cell membrane is semi-permeable"


def test_new_caption_appends_part_and_extends_previous_end(clock):
    acc, _ = make_acc(clock)
    acc.handle_caption("first line here", media_time=5.0)
    acc.handle_caption("second line here", media_time=7.0)
    assert [e.text for e in acc.entries] == ["first line here", "second line here"]
    assert acc.entries[0].end_time == 7.0
    assert acc.chunk.text == "first line here second line here"


def test_finalizes_on_length_cap_alone(clock):
    acc, emitted = make_acc(clock, chunk_max_chars=50)
    acc.handle_caption("a" * 30, media_time=1.0)
    assert emitted == []
    chunk = acc.handle_caption("b" * 30, media_time=2.0)
    assert chunk is not None
    assert len(chunk.text) > 50
    assert emitted[0][0] is chunk
    assert acc.chunk is None


def test_finalizes_on_elapsed_time(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("opening remarks about enzymes", media_time=0.0)
    clock.advance(179.0)
    acc.handle_caption("enzymes lower activation energy", media_time=179.0)
    assert emitted == []
    clock.advance(1.0)
    chunk = acc.handle_caption("they are not consumed", media_time=180.0)
    assert chunk is not None
    assert chunk.chunk_id == "chunk_1"
    assert chunk.t_start == 0.0 and chunk.t_end == 180.0


def test_finalizes_when_media_paused(clock):
    acc, emitted = make_acc(clock)
    chunk = acc.handle_caption("photosynthesis converts light", media_time=3.0, paused=True)
    assert chunk is not None
    assert len(emitted) == 1


def test_pause_capture_forces_finalize(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("glycolysis happens in the cytoplasm", media_time=3.0)
    chunk = acc.pause_capture()
    assert chunk.text == "glycolysis happens in the cytoplasm"
    assert acc.capturing is False
    assert acc.chunk is None
    assert len(emitted) == 1


def test_clear_session_drops_open_chunk_without_emitting(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("some words before clearing", media_time=3.0)
    acc.clear_session()
    assert emitted == []
    assert acc.entries == []
    assert acc.chunk is None
    assert acc.capturing is False


def test_growth_after_finalize_opens_new_chunk(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("mitochondria produce", media_time=1.0, paused=True)
    assert len(emitted) == 1
    acc.update_media(paused=False)
    acc.handle_caption("mitochondria produce ATP", media_time=2.0)
    assert len(acc.entries) == 1
    assert acc.chunk is not None
    assert acc.chunk.text == "mitochondria produce ATP"


def test_tail_context_uses_last_thirty_seconds():
    entries = [
        TranscriptEntry("old line", 0.0, 5.0, 0.0),
        TranscriptEntry("edge line", 70.0, 75.0, 0.0),
        TranscriptEntry("recent line", 95.0, 99.0, 0.0),
    ]
    assert build_tail_context(entries, 100.0) == "edge line recent line"
    assert build_tail_context(entries, 100.0, window_seconds=10.0) == "recent line"
    assert build_tail_context([], 100.0) == ""


def test_finalize_passes_tail_context(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("ancient history", media_time=0.0)
    acc.handle_caption("recent point one", media_time=50.0)
    acc.handle_caption("recent point two", media_time=60.0, paused=True)
    chunk, tail = emitted[0]
    assert tail == "recent point one recent point two"
    assert chunk.text == "ancient history recent point one recent point two"


def test_status_reports_caption_activity(clock):
    acc, _ = make_acc(clock)
    assert acc.status() == {
        "capturing": True,
        "captionsDetected": False,
        "captionsUpdating": False,
        "videoFound": False,
    }
    acc.update_media(current_time=1.0)
    clock.advance(1.0)
    acc.handle_caption("captions are flowing", media_time=2.0)
    status = acc.status()
    assert status["captionsDetected"] is True
    assert status["captionsUpdating"] is True
    assert status["videoFound"] is True
    clock.advance(30.0)
    assert acc.status()["captionsUpdating"] is False


def test_transcript_snapshot_limits_entries(clock):
    acc, _ = make_acc(clock)
    for i in range(5):
        acc.handle_caption(f"line number {i}", media_time=float(i))
    snap = acc.transcript_snapshot(limit=2)
    assert [e["text"] for e in snap["transcript"]] == ["line number 3", "line number 4"]
    assert snap["currentChunk"]["chunkId"] == "chunk_1"


def test_old_entries_are_trimmed_outside_tail_window_and_display_limit(clock):
    acc, _ = make_acc(clock, keep_entries=3, chunk_seconds=10_000, chunk_max_chars=100_000)
    for i in range(10):
        acc.handle_caption(f"caption line {i}", media_time=float(i * 10))

    # line 6 starts exactly at the 30s cutoff, so it stays even past the display limit
    assert [e.text for e in acc.entries] == [f"caption line {i}" for i in range(6, 10)]
    assert acc.tail_context() == "caption line 6 caption line 7 caption line 8 caption line 9"


def test_entries_inside_tail_window_are_kept_beyond_display_limit(clock):
    acc, _ = make_acc(clock, keep_entries=2, chunk_seconds=10_000, chunk_max_chars=100_000)
    for i in range(6):
        acc.handle_caption(f"caption line {i}", media_time=float(i))

    assert len(acc.entries) == 6
    assert acc.tail_context().startswith("caption line 0")


def test_forward_media_time_clears_stale_pause(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("the lecture pauses here", media_time=5.0, paused=True)
    assert len(emitted) == 1

    acc.handle_caption("playback resumes with new material", media_time=8.0)
    acc.handle_caption("and keeps going without a pause flag", media_time=11.0)

    assert acc.media.paused is False
    assert len(emitted) == 1
    assert acc.chunk.text == "playback resumes with new material and keeps going without a pause flag"


def test_explicit_pause_wins_over_forward_media_time(clock):
    acc, emitted = make_acc(clock)
    acc.handle_caption("first caption", media_time=1.0)
    acc.handle_caption("second caption arrives paused", media_time=4.0, paused=True)
    assert acc.media.paused is True
    assert len(emitted) == 1
