"""
Question-aware answer timing coach.

IDLE -> ARMED -> RUNNING -> SOFT_NUDGED? -> HARD_NUDGED? -> ENDED

- Arms on an interviewer question (classified, with a bounded timeout)
- Starts the clock on the first candidate speech while armed
- Fires one soft and one hard nudge per question at the budget thresholds
- Ends on interviewer speech, the end hotkey, or (optionally) a silence gap
"""
from __future__ import annotations

import asyncio
import logging
import time
from threading import RLock
from typing import Callable, Optional

from livecoach.coaching.budgets import NUDGE_MESSAGES, BudgetTable
from livecoach.coaching.classifier import ClassificationCache, HeuristicQuestionClassifier, QuestionClassifier
from livecoach.coaching.models import (
    ACTIVE_STATES,
    TIMED_STATES,
    ClassificationResult,
    CoachingConfig,
    CoachingEndReason,
    CoachingEventRecord,
    CoachingSession,
    CoachingState,
    NudgeType,
    QuestionType,
)
from livecoach.core.logger import log_event
from livecoach.events.bus import EventBus
from livecoach.events.models import CoachingNudgeEvent, CoachingStateChangeEvent, CoachingTimerEvent
from livecoach.persistence.recorder import Recorder, safe_call
from livecoach.transcript.models import AggregatedSegment, TranscriptUpdate

logger = logging.getLogger("livecoach.coaching.manager")

FALLBACK_CLASSIFICATION = ClassificationResult(question_type=QuestionType.UNKNOWN, confidence=0.0)


class CoachingStateMachine:
    def __init__(
        self,
        config: Optional[CoachingConfig] = None,
        classifier: Optional[QuestionClassifier] = None,
        budgets: Optional[BudgetTable] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CoachingConfig()
        self.classifier = classifier or HeuristicQuestionClassifier()
        self.budgets = budgets or BudgetTable()
        self.bus = bus or EventBus(name="coaching")
        self._clock = clock
        self._lock = RLock()
        self._cache = ClassificationCache(ttl_sec=self.config.classification_cache_ttl_sec, clock=clock)

        self._state = CoachingState.IDLE
        self._session: Optional[CoachingSession] = None
        self._last_session: Optional[CoachingSession] = None
        self._session_id: Optional[str] = None
        self._recorder: Optional[Recorder] = None

        self._timer_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._classifying_text: Optional[str] = None
        self._last_candidate_speech: Optional[float] = None
        self._last_interviewer_speech: Optional[float] = None
        self._destroyed = False

    # -------------------------
    # LIFECYCLE
    # -------------------------

    def initialize(self, session_id: str, recorder: Optional[Recorder] = None) -> None:
        if self._destroyed:
            logger.warning("initialize ignored: coach destroyed")
            return
        self.reset()
        with self._lock:
            self._session_id = str(session_id)
            self._recorder = recorder
        log_event("coaching", "initialized", session_id)

    def reset(self) -> None:
        with self._lock:
            previous = self._state
            self._cancel_timer_locked()
            # a reset must not leave a cached verdict for the question in flight
            for text in (self._classifying_text, self._session.question_text if self._session else None):
                if text:
                    self._cache.discard(text)
            self._generation += 1
            self._classifying_text = None
            self._session = None
            self._last_session = None
            self._state = CoachingState.IDLE
            self._last_candidate_speech = None
            self._last_interviewer_speech = None
            session_id = self._session_id

        if previous != CoachingState.IDLE:
            self._dispatch([CoachingStateChangeEvent(state=CoachingState.IDLE)])
        logger.info("coach reset | session_id=%s previous_state=%s", session_id, previous.value)

    def destroy(self) -> None:
        self.reset()
        with self._lock:
            self._destroyed = True
            self._cache.clear()
            self._recorder = None
            self._session_id = None
        self.bus.clear()
        logger.info("coach destroyed")

    # -------------------------
    # QUERIES
    # -------------------------

    def is_enabled(self) -> bool:
        return bool(self.config.enabled)

    def get_state(self) -> CoachingState:
        return self._state

    def get_current_session(self) -> Optional[CoachingSession]:
        with self._lock:
            if self._session is None or self._state not in ACTIVE_STATES:
                return None
            return self._session.snapshot()

    def get_last_session(self) -> Optional[CoachingSession]:
        with self._lock:
            return self._last_session.snapshot() if self._last_session else None

    # -------------------------
    # HANDLERS
    # -------------------------

    async def handle_interviewer_question(self, segment: AggregatedSegment) -> None:
        if self._destroyed:
            logger.warning("question ignored: coach destroyed")
            return
        if not self.is_enabled() or not self._session_id:
            return

        question_text = str(segment.text or "").strip()
        if not question_text:
            return

        with self._lock:
            if self._state in ACTIVE_STATES:
                logger.info("question ignored: question already active | state=%s", self._state.value)
                return
            if self._classifying_text is not None:
                logger.info("question ignored: classification already in flight")
                return
            generation = self._generation
            self._classifying_text = question_text

        classification = await self._classify(question_text)

        with self._lock:
            if generation != self._generation:
                self._cache.discard(question_text)
                logger.info("classification discarded: coach was reset while classifying")
                return
            self._classifying_text = None
            if self._state in ACTIVE_STATES:
                return

            budget = self.budgets.get_budget(classification.question_type, classification.recommended_seconds)
            self._session = CoachingSession(
                session_id=self._session_id,
                question_text=question_text,
                question_type=classification.question_type,
                classification_confidence=float(classification.confidence),
                budget=budget,
                armed_at=self._clock(),
            )
            self._state = CoachingState.ARMED
            events = [self._state_event_locked()]

        log_event(
            "coaching",
            "armed",
            self._session_id,
            question_type=classification.question_type.value,
            confidence=round(float(classification.confidence), 2),
            target_seconds=budget.target_seconds,
        )
        self._dispatch(events)

    def handle_candidate_speech(self, segment: AggregatedSegment | TranscriptUpdate) -> None:
        if self._destroyed:
            return

        with self._lock:
            self._last_candidate_speech = self._clock()
            if self._state != CoachingState.ARMED or self._session is None:
                return

            confidence = segment.confidence if segment.confidence is not None else 1.0
            if confidence < float(self.config.low_diarization_confidence_threshold):
                logger.info("start delayed: low diarization confidence | confidence=%.2f", confidence)
                return

            self._session.state = CoachingState.RUNNING
            self._session.started_at = self._clock()
            self._state = CoachingState.RUNNING
            events = [self._state_event_locked()]
            self._start_timer_locked()

        log_event("coaching", "running", self._session_id)
        self._dispatch(events)

    def handle_interviewer_speech(self, segment: AggregatedSegment | TranscriptUpdate) -> None:
        if self._destroyed:
            return

        with self._lock:
            self._last_interviewer_speech = self._clock()
            if self._state not in ACTIVE_STATES:
                return
            events = self._end_locked(CoachingEndReason.INTERVIEWER_INTERRUPTION)

        self._dispatch(events)

    def end_via_hotkey(self) -> bool:
        if self._destroyed:
            return False

        with self._lock:
            if self._state not in TIMED_STATES:
                return False
            events = self._end_locked(CoachingEndReason.USER_HOTKEY)

        self._dispatch(events)
        return True

    def end_active(self, reason: CoachingEndReason = CoachingEndReason.SESSION_ENDED) -> bool:
        """Close whatever question is active, e.g. when the interview stops."""
        with self._lock:
            if self._state not in ACTIVE_STATES:
                return False
            events = self._end_locked(reason)

        self._dispatch(events)
        return True

    # -------------------------
    # TIMER
    # -------------------------

    def tick(self, now: Optional[float] = None) -> CoachingState:
        """Advance elapsed time and fire whatever thresholds were crossed."""
        with self._lock:
            if self._state not in TIMED_STATES or self._session is None:
                return self._state

            current = float(now if now is not None else self._clock())
            session = self._session
            started_at = float(session.started_at if session.started_at is not None else current)
            session.elapsed_seconds = max(0.0, current - started_at)
            events = self._tick_locked(session, current)
            state = self._state

        self._dispatch(events)
        return state

    def _tick_locked(self, session: CoachingSession, current: float) -> list[object]:
        silence_gap_sec = float(self.config.silence_gap_ms) / 1000.0
        if silence_gap_sec > 0:
            last_speech = self._last_candidate_speech if self._last_candidate_speech is not None else session.started_at
            if last_speech is not None and (current - float(last_speech)) >= silence_gap_sec:
                return self._end_locked(CoachingEndReason.SILENCE_GAP, now=current)

        events: list[object] = []
        budget = session.budget
        if not session.soft_nudge_fired and session.elapsed_seconds >= float(budget.soft_threshold_seconds):
            session.soft_nudge_fired = True
            events.extend(self._nudge_locked(NudgeType.SOFT, CoachingState.SOFT_NUDGED))

        if not session.hard_nudge_fired and session.elapsed_seconds >= float(budget.hard_threshold_seconds):
            session.hard_nudge_fired = True
            events.extend(self._nudge_locked(NudgeType.HARD, CoachingState.HARD_NUDGED))

        target = float(budget.target_seconds)
        events.append(
            CoachingTimerEvent(
                question_type=session.question_type,
                elapsed_seconds=session.elapsed_seconds,
                target_seconds=target,
                state=self._state,
                progress_percent=min(100.0, (session.elapsed_seconds / target) * 100.0) if target > 0 else 100.0,
            )
        )
        return events

    def _nudge_locked(self, nudge_type: NudgeType, next_state: CoachingState) -> list[object]:
        self._state = next_state
        if self._session is not None:
            self._session.state = next_state
        logger.info("%s nudge fired | session_id=%s", nudge_type.value, self._session_id)
        return [
            CoachingNudgeEvent(
                type=nudge_type,
                message=NUDGE_MESSAGES[nudge_type],
                dismiss_after_ms=int(self.config.nudge_auto_dismiss_ms),
            ),
            self._state_event_locked(),
        ]

    def _start_timer_locked(self) -> None:
        self._cancel_timer_locked()
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # no loop: the owner drives tick() directly
            return
        self._timer_task = asyncio.create_task(self._timer_loop(self._generation))

    async def _timer_loop(self, generation: int) -> None:
        interval = float(self.config.timer_interval_sec)
        while True:
            await asyncio.sleep(interval)
            if generation != self._generation or self._state not in TIMED_STATES:
                return
            self.tick()

    def _cancel_timer_locked(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # the timer loop may end its own question; it exits on the next check
        if task is not current:
            task.cancel()

    # -------------------------
    # INTERNALS
    # -------------------------

    async def _classify(self, question_text: str) -> ClassificationResult:
        cached = self._cache.get(question_text)
        if cached is not None:
            logger.info("using cached classification | type=%s", cached.question_type.value)
            return cached

        timeout_sec = float(self.config.classification_timeout_ms) / 1000.0
        try:
            result = await asyncio.wait_for(self.classifier.classify(question_text), timeout=timeout_sec)
        except asyncio.TimeoutError:
            logger.warning("classification timeout, using fallback | timeout_sec=%.2f", timeout_sec)
            return FALLBACK_CLASSIFICATION
        except Exception as exc:
            logger.warning("classification failed, using fallback | err=%s", exc)
            return FALLBACK_CLASSIFICATION

        self._cache.put(question_text, result)
        return result

    def _end_locked(self, reason: CoachingEndReason, now: Optional[float] = None) -> list[object]:
        session = self._session
        if session is None:
            return []

        self._cancel_timer_locked()
        now = float(now if now is not None else self._clock())
        if session.started_at is not None:
            session.elapsed_seconds = max(0.0, now - float(session.started_at))
        session.state = CoachingState.ENDED
        session.ended_at = now
        session.end_reason = reason
        self._state = CoachingState.ENDED

        events = [self._state_event_locked()]
        self._last_session = session.snapshot()
        self._session = None

        log_event(
            "coaching",
            "ended",
            self._session_id,
            reason=reason.value,
            elapsed_seconds=round(session.elapsed_seconds, 1),
            question_type=session.question_type.value,
        )
        safe_call(self._recorder, "record_coaching_event", self._session_id, CoachingEventRecord.from_session(session))
        return events

    def _state_event_locked(self) -> CoachingStateChangeEvent:
        session = self._session
        if session is None:
            return CoachingStateChangeEvent(state=self._state)
        return CoachingStateChangeEvent(
            state=self._state,
            question_type=session.question_type,
            question_type_label=self.budgets.label_for(session.question_type),
            target_seconds=session.budget.target_seconds,
        )

    def _dispatch(self, events: list[object]) -> None:
        for event in events:
            self.bus.publish(event)
