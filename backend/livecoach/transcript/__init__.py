from livecoach.transcript.models import (
    AggregatedSegment,
    RawTranscriptEvent,
    Source,
    TranscriptUpdate,
    WordTiming,
)
from livecoach.transcript.questions import ROLE_INTERVIEWEE, ROLE_INTERVIEWER, QuestionDetector

__all__ = [
    "AggregatedSegment",
    "QuestionDetector",
    "ROLE_INTERVIEWEE",
    "ROLE_INTERVIEWER",
    "RawTranscriptEvent",
    "Source",
    "TranscriptUpdate",
    "WordTiming",
]
