"""
End-of-session speaker role mapping.

Each source's raw diarization labels are mapped to interviewer / interviewee /
unknown from the shape of the conversation: who speaks most, who asks
questions, who opens. Echo and cross-talk between the two sources are kept as
diagnostics and lower the confidence of the map.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from livecoach.core import config
from livecoach.core.logger import log_event
from livecoach.speakers.models import (
    ROLE_UNKNOWN,
    ReconciliationDetails,
    SpeakerRoleMap,
    SpeakerSegment,
    SpeakerStats,
)
from livecoach.text.similarity import normalize_text, text_similarity
from livecoach.transcript.models import Source
from livecoach.transcript.questions import ROLE_INTERVIEWEE, ROLE_INTERVIEWER, QuestionDetector

logger = logging.getLogger("livecoach.speakers.reconciler")

PRIOR_WEIGHT = 0.5
OPENER_WEIGHT = 0.25
ECHO_RATIO_THRESHOLD = 0.2
EMPTY_SOURCE_CONFIDENCE_CAP = 0.35
MIN_CONFIDENCE = 0.05
MAX_CONFIDENCE = 1.0


def _opposite(role: str) -> str:
    return ROLE_INTERVIEWEE if role == ROLE_INTERVIEWER else ROLE_INTERVIEWER


class SpeakerRoleReconciler:
    def __init__(
        self,
        interviewer_source: Source | str = config.INTERVIEWER_SOURCE,
        similarity_threshold: float = config.TEXT_SIMILARITY_THRESHOLD,
        echo_window_ms: float = config.ECHO_TIME_WINDOW_MS,
        overlap_threshold_ms: float = 500.0,
        question_detector: Optional[QuestionDetector] = None,
    ):
        self.interviewer_source = Source.parse(interviewer_source)
        self.similarity_threshold = float(similarity_threshold)
        self.echo_window_ms = float(echo_window_ms)
        self.overlap_threshold_ms = float(overlap_threshold_ms)
        self.question_detector = question_detector or QuestionDetector(interviewer_source=self.interviewer_source)

    def reconcile(self, mic_segments: Iterable, system_segments: Iterable, session_id: Optional[str] = None) -> SpeakerRoleMap:
        mic = [SpeakerSegment.from_row(row) for row in (mic_segments or [])]
        system = [SpeakerSegment.from_row(row) for row in (system_segments or [])]

        mic_stats = self._collect_stats(mic, Source.MICROPHONE)
        system_stats = self._collect_stats(system, Source.SYSTEM)

        interviewer_side, overrode_prior = self._interviewer_side(mic, system, mic_stats, system_stats)

        mic_role = ROLE_INTERVIEWER if interviewer_side == Source.MICROPHONE else ROLE_INTERVIEWEE
        populated_only = not mic or not system
        mic_mapping = self._build_mapping(mic_stats, mic_role, all_same=populated_only)
        system_mapping = self._build_mapping(system_stats, _opposite(mic_role), all_same=populated_only)

        echo_count = self._count_echoes(mic, system)
        overlap_count = self._count_overlaps(mic, system)
        alternation = self._alternation_ratio(mic, system)

        pair_base = max(1, min(len(mic), len(system)))
        echo_detected = echo_count > 0 and echo_count > pair_base * ECHO_RATIO_THRESHOLD
        overlap_ratio = min(1.0, float(overlap_count) / float(pair_base))

        confidence = self._confidence(
            mic_stats,
            system_stats,
            total_segments=len(mic) + len(system),
            alternation=alternation,
            echo_detected=echo_detected,
            overlap_ratio=overlap_ratio,
            overrode_prior=overrode_prior,
            populated_only=populated_only,
        )

        speaker_stats = tuple(item.to_dict() for item in self._ranked(mic_stats) + self._ranked(system_stats))
        result = SpeakerRoleMap(
            microphone_mapping=mic_mapping,
            system_audio_mapping=system_mapping,
            confidence=confidence,
            details=ReconciliationDetails(
                microphone_speakers=tuple(mic_stats.keys()),
                system_audio_speakers=tuple(system_stats.keys()),
                overlap_detected=overlap_count > 0,
                echo_detected=echo_detected,
                total_segments=len(mic) + len(system),
                overlap_count=overlap_count,
                echo_count=echo_count,
                alternation_ratio=alternation,
                speaker_stats=speaker_stats,
            ),
        )

        log_event(
            "speaker_reconciler",
            "reconciled",
            session_id,
            mic_segments=len(mic),
            system_segments=len(system),
            interviewer_side=interviewer_side.value,
            confidence=round(confidence, 3),
            echo_count=echo_count,
            overlap_count=overlap_count,
        )
        return result

    # -------------------------
    # STATS
    # -------------------------

    def _collect_stats(self, segments: list[SpeakerSegment], source: Source) -> dict[str, SpeakerStats]:
        stats: dict[str, SpeakerStats] = {}
        previous_label: Optional[str] = None

        for segment in sorted(segments, key=_start_key):
            label = segment.label
            item = stats.get(label)
            if item is None:
                item = SpeakerStats(label=label, source=source)
                stats[label] = item

            item.segment_count += 1
            item.total_duration += segment.duration

            if segment.confidence is not None:
                item.confidence_samples += 1
                item.average_confidence += (float(segment.confidence) - item.average_confidence) / item.confidence_samples

            if segment.start_time is not None:
                if item.first_appearance is None or segment.start_time < item.first_appearance:
                    item.first_appearance = segment.start_time
            end = segment.end_time if segment.end_time is not None else segment.start_time
            if end is not None:
                if item.last_appearance is None or end > item.last_appearance:
                    item.last_appearance = end

            # a turn starts whenever the label changes along the timeline
            if label != previous_label:
                item.turn_count += 1
            previous_label = label

            if self.question_detector.is_question_text(segment.text):
                item.question_count += 1

        return stats

    @staticmethod
    def _ranked(stats: dict[str, SpeakerStats]) -> list[SpeakerStats]:
        return sorted(stats.values(), key=lambda item: (-item.total_duration, -item.segment_count, item.label))

    # -------------------------
    # ROLE ASSIGNMENT
    # -------------------------

    def _interviewer_side(
        self,
        mic: list[SpeakerSegment],
        system: list[SpeakerSegment],
        mic_stats: dict[str, SpeakerStats],
        system_stats: dict[str, SpeakerStats],
    ) -> tuple[Source, bool]:
        prior = self.interviewer_source
        if not mic or not system:
            return prior, False

        opener = self._opening_source(mic, system)
        scores: dict[Source, float] = {}
        for source, stats in ((Source.MICROPHONE, mic_stats), (Source.SYSTEM, system_stats)):
            ranked = self._ranked(stats)
            score = PRIOR_WEIGHT if source == prior else 0.0
            score += ranked[0].question_ratio if ranked else 0.0
            if opener == source:
                score += OPENER_WEIGHT
            scores[source] = score

        other = prior.other
        if scores[other] > scores[prior]:
            logger.info(
                "interviewer side overrides prior | prior=%s scores=%s",
                prior.value,
                {key.value: round(value, 3) for key, value in scores.items()},
            )
            return other, True
        return prior, False

    @staticmethod
    def _opening_source(mic: list[SpeakerSegment], system: list[SpeakerSegment]) -> Optional[Source]:
        mic_first = min((seg.start_time for seg in mic if seg.start_time is not None), default=None)
        system_first = min((seg.start_time for seg in system if seg.start_time is not None), default=None)
        if mic_first is None or system_first is None or mic_first == system_first:
            return None
        return Source.MICROPHONE if mic_first < system_first else Source.SYSTEM

    def _build_mapping(self, stats: dict[str, SpeakerStats], side_role: str, all_same: bool = False) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for index, item in enumerate(self._ranked(stats)):
            if all_same or index == 0:
                mapping[item.label] = side_role
            elif index == 1:
                mapping[item.label] = _opposite(side_role)
            else:
                mapping[item.label] = ROLE_UNKNOWN
        return mapping

    # -------------------------
    # DIAGNOSTICS
    # -------------------------

    def _count_echoes(self, mic: list[SpeakerSegment], system: list[SpeakerSegment]) -> int:
        count = 0
        system_norm = [(seg, normalize_text(seg.text)) for seg in system if seg.start_time is not None]
        for mic_seg in mic:
            if mic_seg.start_time is None:
                continue
            mic_norm = normalize_text(mic_seg.text)
            if not mic_norm:
                continue
            for sys_seg, sys_norm in system_norm:
                if not sys_norm:
                    continue
                if abs(float(sys_seg.start_time) - float(mic_seg.start_time)) > self.echo_window_ms:
                    continue
                if text_similarity(mic_norm, sys_norm) >= self.similarity_threshold:
                    count += 1
        return count

    def _count_overlaps(self, mic: list[SpeakerSegment], system: list[SpeakerSegment]) -> int:
        count = 0
        timed_system = [seg for seg in system if seg.start_time is not None and seg.end_time is not None]
        for mic_seg in mic:
            if mic_seg.start_time is None or mic_seg.end_time is None:
                continue
            for sys_seg in timed_system:
                overlap = min(mic_seg.end_time, sys_seg.end_time) - max(mic_seg.start_time, sys_seg.start_time)
                if overlap > self.overlap_threshold_ms:
                    count += 1
        return count

    @staticmethod
    def _alternation_ratio(mic: list[SpeakerSegment], system: list[SpeakerSegment]) -> float:
        timeline = sorted(
            [(_start_key(seg), Source.MICROPHONE.value) for seg in mic]
            + [(_start_key(seg), Source.SYSTEM.value) for seg in system]
        )
        if len(timeline) < 2:
            return 0.0
        switches = sum(1 for prev, cur in zip(timeline, timeline[1:]) if prev[1] != cur[1])
        return float(switches) / float(len(timeline) - 1)

    # -------------------------
    # CONFIDENCE
    # -------------------------

    @staticmethod
    def _confidence(
        mic_stats: dict[str, SpeakerStats],
        system_stats: dict[str, SpeakerStats],
        total_segments: int,
        alternation: float,
        echo_detected: bool,
        overlap_ratio: float,
        overrode_prior: bool,
        populated_only: bool,
    ) -> float:
        confidence = 0.5

        if total_segments >= 20:
            confidence += 0.15
        elif total_segments >= 10:
            confidence += 0.10
        elif total_segments >= 5:
            confidence += 0.05

        if mic_stats and system_stats:
            confidence += 0.15
        if len(mic_stats) == 2 and len(system_stats) == 2:
            confidence += 0.10

        confidence += 0.10 * alternation

        if echo_detected:
            confidence -= 0.10
        confidence -= 0.30 * overlap_ratio
        if overrode_prior:
            confidence -= 0.10

        if populated_only:
            confidence = min(confidence, EMPTY_SOURCE_CONFIDENCE_CAP)

        return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))


def _start_key(segment: SpeakerSegment) -> float:
    return float(segment.start_time) if segment.start_time is not None else float("inf")
