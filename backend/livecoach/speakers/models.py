from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from livecoach.transcript.models import Source

ROLE_UNKNOWN = "unknown"
UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class SpeakerSegment:
    """Read-only view of one final segment, as handed to the reconciler."""
    speaker: Optional[str]
    text: str
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    confidence: Optional[float] = None

    @property
    def label(self) -> str:
        return str(self.speaker or "").strip() or UNKNOWN_LABEL

    @property
    def duration(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return max(0.0, float(self.end_time) - float(self.start_time))

    @classmethod
    def from_row(cls, row: Any) -> "SpeakerSegment":
        """
        Rows carrying an arrival ``timestamp`` (epoch ms) are placed on that
        clock: the segment ends at the timestamp and starts one word-span
        earlier. Word timings are provider-relative, so only their span is used.
        Rows without a timestamp keep their own start/end.
        """
        if isinstance(row, SpeakerSegment):
            return row
        if isinstance(row, dict):
            get = row.get
        else:
            def get(key, default=None):
                return getattr(row, key, default)

        start = get("start_time")
        end = get("end_time")
        timestamp = get("timestamp")
        if timestamp is not None:
            span = float(end) - float(start) if start is not None and end is not None else 0.0
            end = float(timestamp)
            start = end - max(0.0, span)
        confidence = get("confidence")
        return cls(
            speaker=get("speaker"),
            text=str(get("text") or ""),
            start_time=float(start) if start is not None else None,
            end_time=float(end) if end is not None else None,
            confidence=float(confidence) if confidence is not None else None,
        )


@dataclass
class SpeakerStats:
    label: str
    source: Source
    total_duration: float = 0.0
    segment_count: int = 0
    average_confidence: float = 0.0
    confidence_samples: int = 0
    first_appearance: Optional[float] = None
    last_appearance: Optional[float] = None
    turn_count: int = 0
    question_count: int = 0

    @property
    def question_ratio(self) -> float:
        if self.segment_count <= 0:
            return 0.0
        return float(self.question_count) / float(self.segment_count)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "source": self.source.value,
            "total_duration": round(self.total_duration, 1),
            "segment_count": self.segment_count,
            "turn_count": self.turn_count,
            "question_count": self.question_count,
            "average_confidence": round(self.average_confidence, 3) if self.confidence_samples else None,
            "first_appearance": self.first_appearance,
            "last_appearance": self.last_appearance,
        }


@dataclass(frozen=True)
class ReconciliationDetails:
    microphone_speakers: tuple[str, ...] = ()
    system_audio_speakers: tuple[str, ...] = ()
    overlap_detected: bool = False
    echo_detected: bool = False
    total_segments: int = 0
    overlap_count: int = 0
    echo_count: int = 0
    alternation_ratio: float = 0.0
    speaker_stats: tuple[dict, ...] = ()

    def to_dict(self) -> dict:
        return {
            "microphone_speakers": list(self.microphone_speakers),
            "system_audio_speakers": list(self.system_audio_speakers),
            "overlap_detected": self.overlap_detected,
            "echo_detected": self.echo_detected,
            "total_segments": self.total_segments,
            "overlap_count": self.overlap_count,
            "echo_count": self.echo_count,
            "alternation_ratio": round(self.alternation_ratio, 3),
            "speaker_stats": [dict(item) for item in self.speaker_stats],
        }


@dataclass(frozen=True)
class SpeakerRoleMap:
    microphone_mapping: dict[str, str] = field(default_factory=dict)
    system_audio_mapping: dict[str, str] = field(default_factory=dict)
    confidence: float = 0.05
    details: ReconciliationDetails = field(default_factory=ReconciliationDetails)

    def role_for(self, source: Source | str, speaker: Optional[str]) -> str:
        mapping = self.microphone_mapping if Source.parse(source) == Source.MICROPHONE else self.system_audio_mapping
        label = str(speaker or "").strip() or UNKNOWN_LABEL
        return mapping.get(label, ROLE_UNKNOWN)

    def to_dict(self) -> dict:
        return {
            "microphone_mapping": dict(self.microphone_mapping),
            "system_audio_mapping": dict(self.system_audio_mapping),
            "confidence": round(self.confidence, 3),
            "details": self.details.to_dict(),
        }
