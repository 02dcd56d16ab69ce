from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from livecoach.coaching.models import CoachingState, NudgeType, QuestionType
from livecoach.transcript.models import AggregatedSegment, TranscriptUpdate


@dataclass(frozen=True)
class TranscriptUpdateEvent:
    update: TranscriptUpdate
    segment_id: str
    version: int


@dataclass(frozen=True)
class QuestionDetectedEvent:
    segment: AggregatedSegment


@dataclass(frozen=True)
class CoachingStateChangeEvent:
    state: CoachingState
    question_type: Optional[QuestionType] = None
    question_type_label: Optional[str] = None
    target_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        payload: dict = {"state": self.state.value}
        if self.question_type is not None:
            payload["question_type"] = self.question_type.value
            payload["question_type_label"] = self.question_type_label
            payload["target_seconds"] = self.target_seconds
        return payload


@dataclass(frozen=True)
class CoachingNudgeEvent:
    type: NudgeType
    message: str
    dismiss_after_ms: int

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "dismiss_after_ms": self.dismiss_after_ms,
        }


@dataclass(frozen=True)
class CoachingTimerEvent:
    question_type: QuestionType
    elapsed_seconds: float
    target_seconds: float
    state: CoachingState
    progress_percent: float

    def to_dict(self) -> dict:
        return {
            "question_type": self.question_type.value,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "target_seconds": self.target_seconds,
            "state": self.state.value,
            "progress_percent": round(self.progress_percent, 1),
        }
