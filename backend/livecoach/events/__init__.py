from livecoach.events.bus import EventBus
from livecoach.events.models import (
    CoachingNudgeEvent,
    CoachingStateChangeEvent,
    CoachingTimerEvent,
    QuestionDetectedEvent,
    TranscriptUpdateEvent,
)

__all__ = [
    "CoachingNudgeEvent",
    "CoachingStateChangeEvent",
    "CoachingTimerEvent",
    "EventBus",
    "QuestionDetectedEvent",
    "TranscriptUpdateEvent",
]
