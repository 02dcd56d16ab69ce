"""
Single aggregation layer for the two transcript sources.

- Collapses partial -> final updates in place (same source + speaker + window)
- Suppresses cross-source echoes using a time window and text similarity
- Emits versioned, idempotent updates; consumers drop stale versions per id
- Flags interviewer questions on final segments
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Callable, Optional, Union

from livecoach.core import config
from livecoach.core.logger import log_event
from livecoach.events.bus import EventBus
from livecoach.events.models import QuestionDetectedEvent, TranscriptUpdateEvent
from livecoach.text.similarity import is_contained, normalize_text, text_similarity, token_similarity
from livecoach.transcript import rules
from livecoach.transcript.models import (
    AggregatedSegment,
    RawTranscriptEvent,
    Source,
    TranscriptUpdate,
)
from livecoach.transcript.questions import QuestionDetector

logger = logging.getLogger("livecoach.transcript.aggregator")

TranscriptEventCallback = Callable[[TranscriptUpdate, str, int], None]
InterviewerQuestionCallback = Callable[[AggregatedSegment], None]


@dataclass
class AggregatorConfig:
    echo_time_window_ms: float = config.ECHO_TIME_WINDOW_MS
    text_similarity_threshold: float = config.TEXT_SIMILARITY_THRESHOLD
    partial_update_window_ms: float = config.PARTIAL_UPDATE_WINDOW_MS
    max_segment_buffer_size: int = config.MAX_SEGMENT_BUFFER_SIZE
    stale_segment_timeout_ms: float = config.STALE_SEGMENT_TIMEOUT_MS
    stale_sweep_interval_sec: float = config.STALE_SWEEP_INTERVAL_SEC
    interviewer_source: Source = config.INTERVIEWER_SOURCE
    interviewer_speaker_slot: Optional[str] = config.INTERVIEWER_SPEAKER_SLOT

    def __post_init__(self):
        self.interviewer_source = Source.parse(self.interviewer_source)
        if float(self.echo_time_window_ms) < 0:
            raise ValueError("echo_time_window_ms must be >= 0")
        if not 0.0 <= float(self.text_similarity_threshold) <= 1.0:
            raise ValueError("text_similarity_threshold must be within [0, 1]")
        if float(self.partial_update_window_ms) < 0:
            raise ValueError("partial_update_window_ms must be >= 0")
        if int(self.max_segment_buffer_size) < 1:
            raise ValueError("max_segment_buffer_size must be >= 1")
        if float(self.stale_segment_timeout_ms) <= 0:
            raise ValueError("stale_segment_timeout_ms must be positive")
        if float(self.stale_sweep_interval_sec) <= 0:
            raise ValueError("stale_sweep_interval_sec must be positive")


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class TranscriptAggregator:
    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        bus: Optional[EventBus] = None,
        question_detector: Optional[QuestionDetector] = None,
        clock_ms: Callable[[], float] = wall_clock_ms,
        session_id: Optional[str] = None,
    ):
        self.config = config or AggregatorConfig()
        self.bus = bus or EventBus(name="transcript")
        self.question_detector = question_detector or QuestionDetector(
            interviewer_source=self.config.interviewer_source,
            interviewer_speaker_slot=self.config.interviewer_speaker_slot,
        )
        self.session_id = session_id
        self._clock_ms = clock_ms
        self._lock = RLock()
        self._segments: dict[str, AggregatedSegment] = {}
        self._recent_finals: list[AggregatedSegment] = []
        self._latest_timestamp: float = 0.0
        self._maintenance_task: Optional[asyncio.Task] = None
        self._destroyed = False
        self._stats = {"ingested": 0, "dropped_empty": 0, "echo_suppressed": 0, "updates": 0, "created": 0}

    # -------------------------
    # SUBSCRIPTIONS
    # -------------------------

    def on_transcript_event(self, callback: TranscriptEventCallback) -> Callable[[], None]:
        def _handler(event: TranscriptUpdateEvent) -> None:
            callback(event.update, event.segment_id, event.version)

        return self.bus.subscribe(TranscriptUpdateEvent, _handler)

    def on_interviewer_question(self, callback: InterviewerQuestionCallback) -> Callable[[], None]:
        def _handler(event: QuestionDetectedEvent) -> None:
            callback(event.segment)

        return self.bus.subscribe(QuestionDetectedEvent, _handler)

    # -------------------------
    # INGESTION
    # -------------------------

    def ingest(self, data: Union[RawTranscriptEvent, dict]) -> Optional[str]:
        """
        Process one raw event. Returns the id of the segment that was created
        or updated, or None when the event was dropped.
        """
        if self._destroyed:
            logger.warning("ingest ignored: aggregator destroyed")
            return None

        try:
            event = data if isinstance(data, RawTranscriptEvent) else RawTranscriptEvent.from_payload(data)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("ingest dropped malformed event | err=%s", exc)
            return None

        normalized_text = normalize_text(event.text)
        if not normalized_text:
            with self._lock:
                self._stats["dropped_empty"] += 1
            return None

        pending: list[object] = []
        with self._lock:
            self._stats["ingested"] += 1
            self._latest_timestamp = max(self._latest_timestamp, float(event.timestamp))

            if self._is_echo(event, normalized_text):
                self._stats["echo_suppressed"] += 1
                self._drop_echoed_partial(event, normalized_text)
                logger.debug("suppressed echo | source=%s text=%r", event.source.value, event.text[:50])
                return None

            segment = self._find_matching_partial(event, normalized_text)
            if segment is not None:
                segment.apply_update(event)
                self._stats["updates"] += 1
            else:
                segment = AggregatedSegment(
                    source=event.source,
                    text=event.text,
                    is_final=bool(event.is_final),
                    timestamp=float(event.timestamp),
                    speaker=event.speaker,
                    confidence=event.confidence,
                    words=tuple(event.words),
                )
                self._segments[segment.id] = segment
                self._stats["created"] += 1

            pending.extend(self._emissions_for(segment))
            self._enforce_buffer_limit()
            segment_id = segment.id

        self._dispatch(pending)
        return segment_id

    def _is_echo(self, event: Union[RawTranscriptEvent, AggregatedSegment], normalized_text: str) -> bool:
        window = float(self.config.echo_time_window_ms)
        threshold = float(self.config.text_similarity_threshold)

        for recent in self._recent_finals:
            if recent.source == event.source:
                continue
            if abs(float(event.timestamp) - recent.timestamp) > window:
                continue
            if text_similarity(normalized_text, recent.normalized_text) >= threshold:
                return True
        return False

    def _drop_echoed_partial(self, event: RawTranscriptEvent, normalized_text: str) -> None:
        """The open partial of a suppressed utterance must never surface as a final."""
        segment = self._find_matching_partial(event, normalized_text)
        if segment is None:
            return
        segment.suppressed_as_duplicate = True
        self._segments.pop(segment.id, None)
        logger.debug("dropped echoed partial | segment_id=%s source=%s", segment.id, segment.source.value)

    def _find_matching_partial(self, event: RawTranscriptEvent, normalized_text: str) -> Optional[AggregatedSegment]:
        window = float(self.config.partial_update_window_ms)
        threshold = float(self.config.text_similarity_threshold)

        for segment in self._segments.values():
            if segment.source != event.source or segment.is_final:
                continue
            if abs(float(event.timestamp) - segment.timestamp) > window:
                continue
            if segment.speaker != event.speaker:
                continue
            if is_contained(normalized_text, segment.normalized_text):
                return segment
            if token_similarity(normalized_text, segment.normalized_text) >= threshold:
                return segment
        return None

    def _emissions_for(self, segment: AggregatedSegment) -> list[object]:
        """Build the events for a changed segment. Caller holds the lock."""
        segment.emitted_at = self._clock_ms()
        events: list[object] = [
            TranscriptUpdateEvent(update=segment.to_update(), segment_id=segment.id, version=segment.version)
        ]

        if segment.is_final:
            self._add_to_recent_finals(segment)
            if self.question_detector.is_interviewer_question(segment):
                log_event(
                    "transcript_aggregator",
                    "interviewer_question_detected",
                    self.session_id,
                    segment_id=segment.id,
                    source=segment.source.value,
                    text=segment.text,
                )
                events.append(QuestionDetectedEvent(segment=segment.snapshot()))
        return events

    def _add_to_recent_finals(self, segment: AggregatedSegment) -> None:
        if not any(item is segment for item in self._recent_finals):
            self._recent_finals.append(segment)

        horizon = float(self.config.echo_time_window_ms) * rules.RECENT_FINALS_WINDOW_FACTOR
        cutoff = self._latest_timestamp - horizon
        self._recent_finals = [item for item in self._recent_finals if item.timestamp >= cutoff]

    def _enforce_buffer_limit(self) -> None:
        limit = int(self.config.max_segment_buffer_size)
        if len(self._segments) <= limit:
            return

        ordered = sorted(self._segments.values(), key=lambda item: item.timestamp)
        for segment in ordered[: len(ordered) - limit]:
            self._segments.pop(segment.id, None)
        logger.debug("evicted %s segments over buffer limit", len(ordered) - limit)

    def _dispatch(self, events: list[object]) -> None:
        for event in events:
            self.bus.publish(event)

    # -------------------------
    # MAINTENANCE
    # -------------------------

    def sweep_stale_partials(self, now_ms: Optional[float] = None) -> int:
        """Force-finalize partials the provider never closed. Returns how many."""
        if self._destroyed:
            return 0

        now = float(now_ms if now_ms is not None else self._clock_ms())
        cutoff = now - float(self.config.stale_segment_timeout_ms)

        pending: list[object] = []
        finalized = 0
        with self._lock:
            for segment in list(self._segments.values()):
                if segment.is_final or segment.timestamp >= cutoff:
                    continue
                if self._is_echo(segment, segment.normalized_text):
                    segment.suppressed_as_duplicate = True
                    self._segments.pop(segment.id, None)
                    self._stats["echo_suppressed"] += 1
                    logger.debug("dropped stale echo partial | segment_id=%s", segment.id)
                    continue
                segment.force_finalize()
                finalized += 1
                logger.info("finalized stale partial | segment_id=%s text=%r", segment.id, segment.text[:30])
                pending.extend(self._emissions_for(segment))

        self._dispatch(pending)
        return finalized

    def start_maintenance(self) -> Optional[asyncio.Task]:
        if self._destroyed:
            return None
        if self._maintenance_task is not None and not self._maintenance_task.done():
            return self._maintenance_task

        self._maintenance_task = asyncio.create_task(self._maintenance_loop())
        return self._maintenance_task

    async def _maintenance_loop(self) -> None:
        interval = float(self.config.stale_sweep_interval_sec)
        while not self._destroyed:
            await asyncio.sleep(interval)
            try:
                self.sweep_stale_partials()
            except Exception:
                logger.exception("stale partial sweep failed")

    def stop_maintenance(self) -> None:
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            self._maintenance_task = None

    # -------------------------
    # QUERIES
    # -------------------------

    def get_final_segments(self) -> list[AggregatedSegment]:
        with self._lock:
            finals = [segment.snapshot() for segment in self._segments.values() if segment.is_final]
        return sorted(finals, key=lambda item: item.timestamp)

    def get_segments_by_source(self, source: Source | str, final_only: bool = False) -> list[AggregatedSegment]:
        wanted = Source.parse(source)
        with self._lock:
            selected = [
                segment.snapshot()
                for segment in self._segments.values()
                if segment.source == wanted and (segment.is_final or not final_only)
            ]
        return sorted(selected, key=lambda item: item.timestamp)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "buffered_segments": len(self._segments),
                "open_partials": sum(1 for segment in self._segments.values() if not segment.is_final),
                "recent_finals": len(self._recent_finals),
                "destroyed": self._destroyed,
                **self._stats,
            }

    # -------------------------
    # LIFECYCLE
    # -------------------------

    def reset(self) -> None:
        with self._lock:
            self._segments.clear()
            self._recent_finals = []
            self._latest_timestamp = 0.0
        log_event("transcript_aggregator", "reset", self.session_id)

    def destroy(self) -> None:
        self.stop_maintenance()
        with self._lock:
            self._destroyed = True
            self._segments.clear()
            self._recent_finals = []
        self.bus.clear()
        log_event("transcript_aggregator", "destroyed", self.session_id)

    @property
    def destroyed(self) -> bool:
        return self._destroyed
