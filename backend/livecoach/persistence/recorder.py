from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Callable, Optional, Protocol

from livecoach.coaching.models import CoachingEventRecord
from livecoach.transcript.models import Source, TranscriptUpdate

logger = logging.getLogger("livecoach.persistence.recorder")


class Recorder(Protocol):
    """Persistence collaborator. The core only writes to it."""

    def start_session(self, session_id: str, started_at: float) -> None:
        ...

    def add_segment(self, session_id: str, source: Source, segment: TranscriptUpdate) -> None:
        ...

    def add_speaker_segment(self, session_id: str, source: Source, segment: TranscriptUpdate) -> None:
        ...

    def record_coaching_event(self, session_id: str, event: CoachingEventRecord) -> None:
        ...

    def end_session(self, session_id: str, ended_at: float, speaker_mapping: Optional[dict]) -> None:
        ...


def safe_call(recorder: Optional[Recorder], method: str, *args: Any) -> bool:
    """
    Invoke a recorder method; failures are logged, never raised.
    Safe no-op without a recorder.
    """
    if recorder is None:
        return False
    fn: Optional[Callable[..., Any]] = getattr(recorder, method, None)
    if fn is None:
        return False
    try:
        fn(*args)
        return True
    except Exception as exc:
        logger.warning("recorder.%s failed | err=%s", method, exc)
        return False


class InMemoryRecorder:
    def __init__(self):
        self._lock = Lock()
        self._sessions: dict[str, dict] = {}

    def _session(self, session_id: str) -> dict:
        return self._sessions.setdefault(
            session_id,
            {
                "started_at": None,
                "ended_at": None,
                "segments": [],
                "speaker_segments": [],
                "coaching_events": [],
                "speaker_mapping": None,
                "active": False,
                "updated_at": time.time(),
            },
        )

    def start_session(self, session_id: str, started_at: float) -> None:
        with self._lock:
            item = self._session(session_id)
            item["started_at"] = started_at
            item["active"] = True
            item["updated_at"] = time.time()

    def add_segment(self, session_id: str, source: Source, segment: TranscriptUpdate) -> None:
        with self._lock:
            item = self._session(session_id)
            item["segments"].append(
                {
                    "source": source.value,
                    "text": segment.text,
                    "speaker": segment.speaker,
                    "start_time": segment.start_time,
                    "end_time": segment.end_time,
                    "confidence": segment.confidence,
                    "is_final": segment.is_final,
                    "timestamp": segment.timestamp,
                }
            )
            item["updated_at"] = time.time()

    def add_speaker_segment(self, session_id: str, source: Source, segment: TranscriptUpdate) -> None:
        with self._lock:
            item = self._session(session_id)
            item["speaker_segments"].append(
                {
                    "source": source.value,
                    "speaker": segment.speaker,
                    "text": segment.text,
                    "timestamp": segment.timestamp,
                    "confidence": segment.confidence,
                    "start_time": segment.start_time,
                    "end_time": segment.end_time,
                }
            )
            item["updated_at"] = time.time()

    def record_coaching_event(self, session_id: str, event: CoachingEventRecord) -> None:
        with self._lock:
            item = self._session(session_id)
            item["coaching_events"].append(event.to_dict())
            item["updated_at"] = time.time()

    def end_session(self, session_id: str, ended_at: float, speaker_mapping: Optional[dict]) -> None:
        with self._lock:
            item = self._session(session_id)
            item["ended_at"] = ended_at
            item["speaker_mapping"] = dict(speaker_mapping) if speaker_mapping else None
            item["active"] = False
            item["updated_at"] = time.time()

    def get(self, session_id: str) -> dict | None:
        with self._lock:
            item = self._sessions.get(session_id)
            return dict(item) if item else None
