"""
One live interview: aggregator + coach + recorder, wired together.

Final canonical updates are routed to the coach by speaker role and reported
to the recorder. Detected questions arm the coach. On stop, the final segments
of both sources are reconciled into a speaker role map.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Callable, Optional, Union

from livecoach.coaching.budgets import BudgetTable
from livecoach.coaching.classifier import QuestionClassifier, build_question_classifier
from livecoach.coaching.manager import CoachingStateMachine
from livecoach.coaching.models import CoachingConfig, CoachingEndReason
from livecoach.core.logger import log_event
from livecoach.events.bus import EventBus
from livecoach.persistence.recorder import InMemoryRecorder, Recorder, safe_call
from livecoach.speakers.models import SpeakerRoleMap
from livecoach.speakers.reconciler import SpeakerRoleReconciler
from livecoach.transcript.aggregator import AggregatorConfig, TranscriptAggregator, wall_clock_ms
from livecoach.transcript.models import AggregatedSegment, RawTranscriptEvent, Source, TranscriptUpdate
from livecoach.transcript.questions import ROLE_INTERVIEWEE, ROLE_INTERVIEWER, QuestionDetector

logger = logging.getLogger("livecoach.session.live_session")


class LiveSession:
    def __init__(
        self,
        aggregator_config: Optional[AggregatorConfig] = None,
        coaching_config: Optional[CoachingConfig] = None,
        recorder: Optional[Recorder] = None,
        classifier: Optional[QuestionClassifier] = None,
        budgets: Optional[BudgetTable] = None,
        clock_ms: Callable[[], float] = wall_clock_ms,
        clock: Callable[[], float] = time.monotonic,
        reconciler: Optional[SpeakerRoleReconciler] = None,
    ):
        self.aggregator = TranscriptAggregator(config=aggregator_config, clock_ms=clock_ms)
        agg_config = self.aggregator.config
        self.detector: QuestionDetector = self.aggregator.question_detector
        self.coach = CoachingStateMachine(
            config=coaching_config,
            classifier=classifier or build_question_classifier(),
            budgets=budgets,
            clock=clock,
        )
        self.recorder: Recorder = recorder if recorder is not None else InMemoryRecorder()
        self.reconciler = reconciler or SpeakerRoleReconciler(
            interviewer_source=agg_config.interviewer_source,
            similarity_threshold=agg_config.text_similarity_threshold,
            echo_window_ms=agg_config.echo_time_window_ms,
            question_detector=self.detector,
        )

        self.session_id: Optional[str] = None
        self.last_speaker_map: Optional[SpeakerRoleMap] = None
        self._running = False
        self._closed = False
        self._in_ingest = False
        self._pending_questions: list[AggregatedSegment] = []
        self._routed_versions: dict[str, int] = {}
        self._unsubscribers: list[Callable[[], None]] = []
        self._drain_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def transcript_bus(self) -> EventBus:
        return self.aggregator.bus

    @property
    def coaching_bus(self) -> EventBus:
        return self.coach.bus

    # -------------------------
    # LIFECYCLE
    # -------------------------

    async def start(self, session_id: Optional[str] = None) -> str:
        if self._closed:
            raise RuntimeError("live session is closed")
        if self._running and self.session_id:
            return self.session_id

        self.session_id = str(session_id or "").strip() or str(uuid.uuid4())
        self.aggregator.session_id = self.session_id
        self._routed_versions.clear()
        self._pending_questions.clear()

        safe_call(self.recorder, "start_session", self.session_id, time.time())
        self.coach.initialize(self.session_id, self.recorder)

        self._unsubscribers = [
            self.aggregator.on_transcript_event(self._route_update),
            self.aggregator.on_interviewer_question(self._queue_question),
        ]
        self.aggregator.start_maintenance()
        self._running = True

        log_event("live_session", "started", self.session_id)
        return self.session_id

    async def stop(self) -> Optional[SpeakerRoleMap]:
        if not self._running:
            return None

        await self._await_drain()
        self.coach.end_active(CoachingEndReason.SESSION_ENDED)

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.aggregator.stop_maintenance()

        mic_segments = self.aggregator.get_segments_by_source(Source.MICROPHONE, final_only=True)
        system_segments = self.aggregator.get_segments_by_source(Source.SYSTEM, final_only=True)
        speaker_map = self.reconciler.reconcile(mic_segments, system_segments, session_id=self.session_id)
        self.last_speaker_map = speaker_map

        safe_call(self.recorder, "end_session", self.session_id, time.time(), speaker_map.to_dict())

        self.coach.reset()
        self.aggregator.reset()
        self._pending_questions.clear()
        self._routed_versions.clear()
        self._running = False

        log_event(
            "live_session",
            "stopped",
            self.session_id,
            mic_segments=len(mic_segments),
            system_segments=len(system_segments),
            mapping_confidence=round(speaker_map.confidence, 3),
        )
        return speaker_map

    async def close(self) -> None:
        if self._closed:
            return
        if self._running:
            await self.stop()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None
        self.aggregator.destroy()
        self.coach.destroy()
        self._closed = True
        log_event("live_session", "closed", self.session_id)

    # -------------------------
    # INPUT
    # -------------------------

    async def ingest(self, event: Union[RawTranscriptEvent, dict]) -> Optional[str]:
        if not self._running:
            logger.warning("ingest ignored: live session not running")
            return None

        self._in_ingest = True
        try:
            segment_id = self.aggregator.ingest(event)
        finally:
            self._in_ingest = False

        await self._drain_questions()
        return segment_id

    def end_coaching(self) -> bool:
        return self.coach.end_via_hotkey()

    # -------------------------
    # ROUTING
    # -------------------------

    def _route_update(self, update: TranscriptUpdate, segment_id: str, version: int) -> None:
        if not update.is_final:
            return
        if self._routed_versions.get(segment_id, 0) >= int(version):
            return
        self._routed_versions[segment_id] = int(version)

        safe_call(self.recorder, "add_segment", self.session_id, update.source, update)
        if update.speaker:
            safe_call(self.recorder, "add_speaker_segment", self.session_id, update.source, update)

        role = self.detector.role_of(update.source, update.speaker)
        if role == ROLE_INTERVIEWER:
            self.coach.handle_interviewer_speech(update)
        elif role == ROLE_INTERVIEWEE:
            self.coach.handle_candidate_speech(update)

    def _queue_question(self, segment: AggregatedSegment) -> None:
        self._pending_questions.append(segment)
        if self._in_ingest:
            return
        # detected outside ingest (stale sweep): arm on the loop
        if self._drain_task is None or self._drain_task.done():
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("question queued without a running loop")
                return
            self._drain_task = loop.create_task(self._drain_questions())

    async def _drain_questions(self) -> None:
        while self._pending_questions:
            segment = self._pending_questions.pop(0)
            try:
                await self.coach.handle_interviewer_question(segment)
            except Exception:
                logger.exception("arming coach failed | session_id=%s", self.session_id)

    async def _await_drain(self) -> None:
        task = self._drain_task
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._drain_questions()
