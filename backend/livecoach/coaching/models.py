from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional
import uuid

from livecoach.core import config


class QuestionType(str, Enum):
    TELL_ME_ABOUT_YOURSELF = "tell_me_about_yourself"
    PROJECT_DEEP_DIVE = "project_deep_dive"
    BEHAVIORAL_STAR = "behavioral_star"
    SYSTEM_DESIGN = "system_design"
    CODING_EXPLANATION = "coding_explanation"
    QA_LIGHT = "qa_light"
    UNKNOWN = "unknown"


class CoachingState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    RUNNING = "running"
    SOFT_NUDGED = "soft_nudged"
    HARD_NUDGED = "hard_nudged"
    ENDED = "ended"


TIMED_STATES = frozenset({CoachingState.RUNNING, CoachingState.SOFT_NUDGED, CoachingState.HARD_NUDGED})
ACTIVE_STATES = frozenset({CoachingState.ARMED}) | TIMED_STATES


class CoachingEndReason(str, Enum):
    INTERVIEWER_INTERRUPTION = "interviewer_interruption"
    SILENCE_GAP = "silence_gap"
    USER_HOTKEY = "user_hotkey"
    SESSION_ENDED = "session_ended"


class NudgeType(str, Enum):
    SOFT = "soft"
    HARD = "hard"


@dataclass(frozen=True)
class QuestionBudget:
    target_seconds: float
    soft_threshold_seconds: float
    hard_threshold_seconds: float

    def to_dict(self) -> dict:
        return {
            "target_seconds": self.target_seconds,
            "soft_threshold_seconds": self.soft_threshold_seconds,
            "hard_threshold_seconds": self.hard_threshold_seconds,
        }


@dataclass(frozen=True)
class ClassificationResult:
    question_type: QuestionType
    confidence: float
    recommended_seconds: Optional[float] = None


@dataclass
class CoachingConfig:
    enabled: bool = config.COACHING_ENABLED
    classification_timeout_ms: int = config.COACH_CLASSIFICATION_TIMEOUT_MS
    nudge_auto_dismiss_ms: int = config.COACH_NUDGE_AUTO_DISMISS_MS
    low_diarization_confidence_threshold: float = config.COACH_LOW_DIARIZATION_CONFIDENCE
    silence_gap_ms: int = config.COACH_SILENCE_GAP_MS
    timer_interval_sec: float = config.COACH_TIMER_INTERVAL_SEC
    classification_cache_ttl_sec: float = config.COACH_CLASSIFICATION_CACHE_TTL_SEC

    def __post_init__(self):
        if int(self.classification_timeout_ms) <= 0:
            raise ValueError("classification_timeout_ms must be positive")
        if int(self.nudge_auto_dismiss_ms) < 0:
            raise ValueError("nudge_auto_dismiss_ms must be >= 0")
        if not 0.0 <= float(self.low_diarization_confidence_threshold) <= 1.0:
            raise ValueError("low_diarization_confidence_threshold must be within [0, 1]")
        if int(self.silence_gap_ms) < 0:
            raise ValueError("silence_gap_ms must be >= 0")
        if float(self.timer_interval_sec) <= 0:
            raise ValueError("timer_interval_sec must be positive")


@dataclass
class CoachingSession:
    """One question instance, from arming until it ends."""
    session_id: str
    question_text: str
    question_type: QuestionType
    classification_confidence: float
    budget: QuestionBudget
    armed_at: float
    state: CoachingState = CoachingState.ARMED
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    elapsed_seconds: float = 0.0
    soft_nudge_fired: bool = False
    hard_nudge_fired: bool = False
    end_reason: Optional[CoachingEndReason] = None

    def snapshot(self) -> "CoachingSession":
        return replace(self)


@dataclass(frozen=True)
class CoachingEventRecord:
    """What gets handed to the recorder once a question instance ends."""
    id: str
    session_id: str
    question_text: str
    question_type: QuestionType
    classification_confidence: float
    budget_seconds: float
    actual_seconds: int
    soft_nudge_fired: bool
    hard_nudge_fired: bool
    end_reason: CoachingEndReason
    started_at: Optional[float]
    ended_at: Optional[float]

    @classmethod
    def from_session(cls, session: CoachingSession) -> "CoachingEventRecord":
        return cls(
            id=session.id,
            session_id=session.session_id,
            question_text=session.question_text,
            question_type=session.question_type,
            classification_confidence=session.classification_confidence,
            budget_seconds=session.budget.target_seconds,
            actual_seconds=int(round(session.elapsed_seconds)),
            soft_nudge_fired=session.soft_nudge_fired,
            hard_nudge_fired=session.hard_nudge_fired,
            end_reason=session.end_reason or CoachingEndReason.SESSION_ENDED,
            started_at=session.started_at,
            ended_at=session.ended_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "question_text": self.question_text,
            "question_type": self.question_type.value,
            "classification_confidence": self.classification_confidence,
            "budget_seconds": self.budget_seconds,
            "actual_seconds": self.actual_seconds,
            "soft_nudge_fired": self.soft_nudge_fired,
            "hard_nudge_fired": self.hard_nudge_fired,
            "end_reason": self.end_reason.value,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }
