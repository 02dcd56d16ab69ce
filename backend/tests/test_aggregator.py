import asyncio

import pytest

from livecoach.transcript.aggregator import AggregatorConfig, TranscriptAggregator
from livecoach.transcript.models import RawTranscriptEvent, Source, WordTiming


T0 = 1_700_000_000_000.0


def _event(source, text, ts, final=True, speaker=None, confidence=None, words=()):
    return RawTranscriptEvent(
        source=Source(source),
        text=text,
        is_final=final,
        timestamp=T0 + ts,
        speaker=speaker,
        confidence=confidence,
        words=tuple(words),
    )


def _collect(aggregator):
    updates = []
    questions = []
    aggregator.on_transcript_event(lambda update, segment_id, version: updates.append((segment_id, version, update)))
    aggregator.on_interviewer_question(lambda segment: questions.append(segment))
    return updates, questions


def test_partials_collapse_into_one_versioned_segment(clock_ms):
    aggregator = TranscriptAggregator(clock_ms=clock_ms)
    updates, _ = _collect(aggregator)

    first = aggregator.ingest(_event("microphone", "I worked on", 0, final=False))
    second = aggregator.ingest(_event("microphone", "I worked on the billing service", 400, final=False))
    third = aggregator.ingest(_event("microphone", "I worked on the billing service.", 900, final=True))

    assert first == second == third
    assert [version for _, version, _ in updates] == [1, 2, 3]
    assert updates[-1][2].is_final is True
    assert len(aggregator.get_final_segments()) == 1
    assert aggregator.snapshot()["open_partials"] == 0


def test_update_keeps_confidence_and_words_when_absent():
    aggregator = TranscriptAggregator()
    words = [WordTiming("hello", T0, T0 + 300), WordTiming("there", T0 + 300, T0 + 600)]

    segment_id = aggregator.ingest(_event("microphone", "hello there", 0, final=False, confidence=0.9, words=words))
    aggregator.ingest(_event("microphone", "hello there friend", 500, final=True))

    [segment] = aggregator.get_final_segments()
    assert segment.id == segment_id
    assert segment.confidence == 0.9
    assert segment.start_time == T0
    assert segment.end_time == T0 + 600
    assert segment.version == 2


def test_different_speakers_do_not_merge():
    aggregator = TranscriptAggregator()

    first = aggregator.ingest(_event("microphone", "hello there", 0, final=False, speaker="Speaker 1"))
    second = aggregator.ingest(_event("microphone", "hello there friend", 200, final=False, speaker="Speaker 2"))

    assert first != second
    assert aggregator.snapshot()["open_partials"] == 2


def test_cross_source_echo_is_suppressed_inside_window():
    aggregator = TranscriptAggregator()
    updates, _ = _collect(aggregator)

    aggregator.ingest(_event("system", "What is your greatest strength?", 0))
    echoed = aggregator.ingest(_event("microphone", "what is your greatest strength", 200))

    assert echoed is None
    assert len(updates) == 1
    assert aggregator.snapshot()["echo_suppressed"] == 1


def test_dissimilar_text_close_in_time_is_not_suppressed():
    aggregator = TranscriptAggregator()
    updates, _ = _collect(aggregator)

    aggregator.ingest(_event("system", "The weather is nice today", 0))
    aggregator.ingest(_event("microphone", "What is your favorite programming language", 100))

    assert len(updates) == 2
    assert aggregator.snapshot()["echo_suppressed"] == 0


def test_echoed_final_closes_its_open_partial(clock_ms):
    aggregator = TranscriptAggregator(clock_ms=clock_ms)
    updates, _ = _collect(aggregator)
    start = clock_ms() - T0

    aggregator.ingest(_event("system", "What is your", start, final=False))
    aggregator.ingest(_event("microphone", "what is your", start + 100, final=False))
    aggregator.ingest(_event("system", "What is your greatest strength?", start + 800))
    assert aggregator.ingest(_event("microphone", "what is your greatest strength", start + 900)) is None

    clock_ms.advance(20_000)
    assert aggregator.sweep_stale_partials() == 0

    finals = [(update.source.value, update.text) for _, _, update in updates if update.is_final]
    assert finals == [("system", "What is your greatest strength?")]
    assert aggregator.get_segments_by_source("microphone") == []
    assert aggregator.snapshot()["open_partials"] == 0


def test_stale_echo_partial_is_dropped_by_sweep(clock_ms):
    aggregator = TranscriptAggregator(clock_ms=clock_ms)
    updates, _ = _collect(aggregator)
    start = clock_ms() - T0

    aggregator.ingest(_event("microphone", "tell me about", start + 200, final=False))
    aggregator.ingest(_event("system", "Tell me about yourself.", start))
    assert aggregator.snapshot()["open_partials"] == 1

    clock_ms.advance(20_000)

    assert aggregator.sweep_stale_partials() == 0
    assert [update.source.value for _, _, update in updates if update.is_final] == ["system"]
    assert aggregator.snapshot()["echo_suppressed"] == 1


def test_same_text_outside_echo_window_is_kept():
    aggregator = TranscriptAggregator()

    aggregator.ingest(_event("system", "What is your greatest strength?", 0))
    repeated = aggregator.ingest(_event("microphone", "What is your greatest strength?", 1200))

    assert repeated is not None
    assert len(aggregator.get_segments_by_source("microphone")) == 1


def test_empty_and_malformed_input_is_dropped():
    aggregator = TranscriptAggregator()
    updates, _ = _collect(aggregator)

    assert aggregator.ingest(_event("microphone", "  ...  ", 0)) is None
    assert aggregator.ingest({"source": "speaker-phone", "text": "hello", "timestamp": T0}) is None
    assert aggregator.ingest(["system", "hello there"]) is None
    assert aggregator.ingest(None) is None
    assert aggregator.ingest({"source": "system", "text": "hello there", "timestamp": T0, "words": ["hello"]}) is None
    assert updates == []


def test_adapter_dict_payload_is_accepted():
    aggregator = TranscriptAggregator()

    segment_id = aggregator.ingest(
        {"source": "system", "text": "Okay.", "isFinal": True, "timestamp": T0, "speaker": "", "confidence": None}
    )

    [segment] = aggregator.get_final_segments()
    assert segment.id == segment_id
    assert segment.speaker is None
    assert segment.source == Source.SYSTEM


def test_interviewer_question_detected_on_final_only():
    aggregator = TranscriptAggregator()
    _, questions = _collect(aggregator)

    aggregator.ingest(_event("system", "Tell me about a time you", 0, final=False))
    assert questions == []

    aggregator.ingest(_event("system", "Tell me about a time you failed.", 800, final=True))
    aggregator.ingest(_event("microphone", "What do you mean by failed?", 5000, final=True))

    assert len(questions) == 1
    assert questions[0].text == "Tell me about a time you failed."
    assert questions[0].is_final is True


def test_question_listener_gets_a_copy():
    aggregator = TranscriptAggregator()
    _, questions = _collect(aggregator)

    segment_id = aggregator.ingest(_event("system", "Why did you leave?", 0))
    questions[0].text = "mutated"

    [segment] = aggregator.get_final_segments()
    assert segment.id == segment_id
    assert segment.text == "Why did you leave?"


def test_stale_partials_are_force_finalized(clock_ms):
    config = AggregatorConfig(stale_segment_timeout_ms=10_000)
    aggregator = TranscriptAggregator(config=config, clock_ms=clock_ms)
    updates, questions = _collect(aggregator)

    aggregator.ingest(RawTranscriptEvent(Source.SYSTEM, "Why did you pick Go", False, clock_ms()))
    assert aggregator.sweep_stale_partials() == 0

    clock_ms.advance(10_001)
    assert aggregator.sweep_stale_partials() == 1

    assert [version for _, version, _ in updates] == [1, 2]
    assert updates[-1][2].is_final is True
    assert len(questions) == 1
    assert aggregator.sweep_stale_partials() == 0


def test_buffer_cap_evicts_oldest():
    aggregator = TranscriptAggregator(config=AggregatorConfig(max_segment_buffer_size=3))
    texts = ["alpha one", "bravo two", "charlie three", "delta four", "echo five"]

    for index, text in enumerate(texts):
        aggregator.ingest(_event("microphone", text, index * 3000))

    finals = aggregator.get_final_segments()
    assert [segment.text for segment in finals] == ["charlie three", "delta four", "echo five"]
    assert aggregator.snapshot()["buffered_segments"] == 3


def test_failing_listener_does_not_block_others():
    aggregator = TranscriptAggregator()
    received = []

    def _broken(update, segment_id, version):
        raise RuntimeError("listener bug")

    aggregator.on_transcript_event(_broken)
    aggregator.on_transcript_event(lambda update, segment_id, version: received.append(version))

    assert aggregator.ingest(_event("microphone", "still delivered", 0)) is not None
    assert received == [1]


def test_listener_may_unsubscribe_during_dispatch():
    aggregator = TranscriptAggregator()
    received = []
    holder = {}

    def _once(update, segment_id, version):
        received.append(update.text)
        holder["unsubscribe"]()

    holder["unsubscribe"] = aggregator.on_transcript_event(_once)

    aggregator.ingest(_event("microphone", "first answer", 0))
    aggregator.ingest(_event("microphone", "second answer here", 5000))

    assert received == ["first answer"]


def test_reset_clears_state_but_keeps_listeners():
    aggregator = TranscriptAggregator()
    updates, _ = _collect(aggregator)

    aggregator.ingest(_event("system", "Hello and welcome", 0))
    aggregator.reset()
    assert aggregator.get_final_segments() == []

    # nothing left to echo against after a reset
    assert aggregator.ingest(_event("microphone", "Hello and welcome", 100)) is not None
    assert len(updates) == 2


def test_destroy_is_terminal():
    aggregator = TranscriptAggregator()
    updates, _ = _collect(aggregator)

    aggregator.destroy()

    assert aggregator.destroyed is True
    assert aggregator.ingest(_event("microphone", "after destroy", 0)) is None
    assert aggregator.bus.listener_count() == 0
    assert updates == []


def test_invalid_config_raises():
    with pytest.raises(ValueError):
        AggregatorConfig(text_similarity_threshold=1.5)
    with pytest.raises(ValueError):
        AggregatorConfig(max_segment_buffer_size=0)
    with pytest.raises(ValueError):
        AggregatorConfig(interviewer_source="speakerphone")


@pytest.mark.asyncio
async def test_maintenance_task_sweeps_and_stops(clock_ms):
    config = AggregatorConfig(stale_segment_timeout_ms=1_000, stale_sweep_interval_sec=0.01)
    aggregator = TranscriptAggregator(config=config, clock_ms=clock_ms)

    aggregator.ingest(RawTranscriptEvent(Source.MICROPHONE, "and then we", False, clock_ms()))
    clock_ms.advance(5_000)

    task = aggregator.start_maintenance()
    await asyncio.sleep(0.05)

    assert aggregator.snapshot()["open_partials"] == 0
    aggregator.destroy()
    await asyncio.gather(task, return_exceptions=True)
    assert task.done()
