from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional
import uuid

from livecoach.text.similarity import normalize_text


class Source(str, Enum):
    MICROPHONE = "microphone"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Any) -> "Source":
        if isinstance(value, Source):
            return value
        raw = str(value or "").strip().lower()
        if raw in {"mic", "microphone"}:
            return cls.MICROPHONE
        if raw in {"system", "system_audio", "systemaudio", "remote"}:
            return cls.SYSTEM
        raise ValueError(f"unknown transcript source: {value!r}")

    @property
    def other(self) -> "Source":
        return Source.SYSTEM if self is Source.MICROPHONE else Source.MICROPHONE


@dataclass(frozen=True)
class WordTiming:
    text: str
    start: float
    end: float
    speaker: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "WordTiming":
        if not isinstance(payload, dict):
            raise TypeError(f"word timing must be a mapping, got {type(payload).__name__}")
        speaker = payload.get("speaker")
        return cls(
            text=str(payload.get("text") or payload.get("word") or ""),
            start=float(payload.get("start") or 0.0),
            end=float(payload.get("end") or 0.0),
            speaker=str(speaker) if speaker is not None else None,
        )

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "speaker": self.speaker,
        }


@dataclass(frozen=True)
class RawTranscriptEvent:
    """
    One chunk from a speech-to-text adapter, partial or final.
    Never stored; the aggregator copies what it needs.
    """
    source: Source
    text: str
    is_final: bool
    timestamp: float
    speaker: Optional[str] = None
    confidence: Optional[float] = None
    words: tuple[WordTiming, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict) -> "RawTranscriptEvent":
        if not isinstance(payload, dict):
            raise TypeError(f"transcript event must be a mapping, got {type(payload).__name__}")
        is_final = payload.get("is_final", payload.get("isFinal", False))
        speaker = payload.get("speaker")
        confidence = payload.get("confidence")
        words = tuple(
            word if isinstance(word, WordTiming) else WordTiming.from_payload(word)
            for word in (payload.get("words") or [])
        )
        return cls(
            source=Source.parse(payload.get("source")),
            text=str(payload.get("text") or ""),
            is_final=bool(is_final),
            timestamp=float(payload.get("timestamp") or 0.0),
            speaker=str(speaker) if speaker not in (None, "") else None,
            confidence=float(confidence) if confidence is not None else None,
            words=words,
        )


@dataclass(frozen=True)
class TranscriptUpdate:
    """
    Canonical view of a segment handed to consumers.
    Internal bookkeeping (id, normalized text, emission marks) is stripped.
    """
    source: Source
    text: str
    is_final: bool
    timestamp: float
    speaker: Optional[str] = None
    confidence: Optional[float] = None
    words: tuple[WordTiming, ...] = ()
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "text": self.text,
            "is_final": self.is_final,
            "timestamp": self.timestamp,
            "speaker": self.speaker,
            "confidence": self.confidence,
            "words": [word.to_dict() for word in self.words],
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass
class AggregatedSegment:
    """
    One tracked utterance from one source.
    Mutated in place by the aggregator only; everyone else gets snapshot() copies.
    """
    source: Source
    text: str
    is_final: bool
    timestamp: float
    speaker: Optional[str] = None
    confidence: Optional[float] = None
    words: tuple[WordTiming, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    version: int = 1
    normalized_text: str = ""
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    emitted_at: Optional[float] = None
    suppressed_as_duplicate: bool = False

    def __post_init__(self):
        self.normalized_text = normalize_text(self.text)
        if self.words:
            self.start_time = self.words[0].start
            self.end_time = self.words[-1].end

    def apply_update(self, event: RawTranscriptEvent) -> None:
        self.version += 1
        self.text = event.text
        self.normalized_text = normalize_text(event.text)
        self.is_final = bool(event.is_final)
        self.timestamp = float(event.timestamp)
        if event.confidence is not None:
            self.confidence = event.confidence
        if event.words:
            self.words = tuple(event.words)
            self.start_time = event.words[0].start
            self.end_time = event.words[-1].end

    def force_finalize(self) -> None:
        self.version += 1
        self.is_final = True

    def snapshot(self) -> "AggregatedSegment":
        return replace(self)

    def to_update(self) -> TranscriptUpdate:
        return TranscriptUpdate(
            source=self.source,
            text=self.text,
            is_final=self.is_final,
            timestamp=self.timestamp,
            speaker=self.speaker,
            confidence=self.confidence,
            words=tuple(self.words),
            start_time=self.start_time,
            end_time=self.end_time,
        )
