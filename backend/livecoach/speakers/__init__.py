from livecoach.speakers.models import (
    ROLE_UNKNOWN,
    ReconciliationDetails,
    SpeakerRoleMap,
    SpeakerSegment,
    SpeakerStats,
)
from livecoach.speakers.reconciler import SpeakerRoleReconciler

__all__ = [
    "ROLE_UNKNOWN",
    "ReconciliationDetails",
    "SpeakerRoleMap",
    "SpeakerSegment",
    "SpeakerStats",
    "SpeakerRoleReconciler",
]
