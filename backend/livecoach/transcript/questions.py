from __future__ import annotations

import re
from typing import Iterable, Optional

from livecoach.transcript import rules
from livecoach.transcript.models import AggregatedSegment, Source, TranscriptUpdate

ROLE_INTERVIEWER = "interviewer"
ROLE_INTERVIEWEE = "interviewee"


class QuestionDetector:
    """
    Decides who authored a segment and whether its text reads as a question.

    Lead words and terminators are plain data so deployments can tune them
    without touching the aggregator.
    """

    def __init__(
        self,
        interviewer_source: Source = Source.SYSTEM,
        interviewer_speaker_slot: Optional[str] = "Speaker 0",
        lead_words: Iterable[str] = rules.QUESTION_LEAD_WORDS,
        terminators: Iterable[str] = rules.QUESTION_TERMINATORS,
    ):
        self.interviewer_source = Source.parse(interviewer_source)
        self.interviewer_speaker_slot = str(interviewer_speaker_slot or "").strip() or None
        self.lead_words = tuple(str(word).strip().lower() for word in lead_words if str(word).strip())
        self.terminators = tuple(str(mark) for mark in terminators if str(mark))
        self._lead_re = (
            re.compile(r"^(?:%s)\b" % "|".join(re.escape(word) for word in self.lead_words), re.IGNORECASE)
            if self.lead_words
            else None
        )

    def is_question_text(self, text: str) -> bool:
        clean = str(text or "").strip()
        if not clean:
            return False
        if any(clean.endswith(mark) for mark in self.terminators):
            return True
        return bool(self._lead_re and self._lead_re.match(clean))

    def role_of(self, source: Source, speaker: Optional[str]) -> Optional[str]:
        label = str(speaker or "").strip()
        lowered = label.lower()

        if any(marker in lowered for marker in rules.INTERVIEWER_LABEL_MARKERS):
            return ROLE_INTERVIEWER
        if any(marker in lowered for marker in rules.CANDIDATE_LABEL_MARKERS):
            return ROLE_INTERVIEWEE
        # slot labels restart per stream; routing ignores them
        if source == self.interviewer_source:
            return ROLE_INTERVIEWER
        if source == self.interviewer_source.other:
            return ROLE_INTERVIEWEE
        return None

    def is_interviewer(self, segment: AggregatedSegment | TranscriptUpdate) -> bool:
        label = str(segment.speaker or "").strip()
        if any(marker in label.lower() for marker in rules.INTERVIEWER_LABEL_MARKERS):
            return True
        if self.interviewer_speaker_slot and label == self.interviewer_speaker_slot:
            return True
        return segment.source == self.interviewer_source

    def is_interviewer_question(self, segment: AggregatedSegment) -> bool:
        if not segment.is_final:
            return False
        if not self.is_interviewer(segment):
            return False
        return self.is_question_text(segment.text)
