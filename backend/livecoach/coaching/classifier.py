from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from livecoach.coaching.models import ClassificationResult, QuestionType
from livecoach.core.config import COACH_CLASSIFICATION_TIMEOUT_MS, COACH_CLASSIFIER_URL
from livecoach.text.similarity import normalize_text

logger = logging.getLogger("livecoach.coaching.classifier")

CLASSIFY_PATH = "/api/coaching/classify"


class ClassificationError(RuntimeError):
    pass


class QuestionClassifier(Protocol):
    async def classify(self, question_text: str, context: Optional[str] = None) -> ClassificationResult:
        ...


_HEURISTIC_RULES: list[tuple[QuestionType, float, tuple[str, ...]]] = [
    (
        QuestionType.TELL_ME_ABOUT_YOURSELF,
        0.8,
        ("tell me about yourself", "walk me through your background", "introduce yourself"),
    ),
    (
        QuestionType.PROJECT_DEEP_DIVE,
        0.7,
        ("project", "describe a time", "most challenging", "proud of"),
    ),
    (
        QuestionType.BEHAVIORAL_STAR,
        0.75,
        ("conflict", "challenge", "failure", "leadership", "difficult situation", "disagreed"),
    ),
    (
        QuestionType.SYSTEM_DESIGN,
        0.7,
        ("design", "architect", "scale", "system"),
    ),
    (
        QuestionType.CODING_EXPLANATION,
        0.7,
        ("code", "algorithm", "implement", "tradeoff", "complexity"),
    ),
    (
        QuestionType.QA_LIGHT,
        0.75,
        ("why us", "why this company", "timeline", "salary", "compensation", "questions for"),
    ),
]


def heuristic_classification(question_text: str) -> ClassificationResult:
    lower = str(question_text or "").lower()

    for question_type, confidence, keywords in _HEURISTIC_RULES:
        if any(keyword in lower for keyword in keywords):
            return ClassificationResult(question_type=question_type, confidence=confidence)

    return ClassificationResult(question_type=QuestionType.UNKNOWN, confidence=0.5)


class HeuristicQuestionClassifier:
    """Keyword rules; used when no remote classifier is configured."""

    async def classify(self, question_text: str, context: Optional[str] = None) -> ClassificationResult:
        return heuristic_classification(question_text)


class ClassificationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    recommended_seconds: Optional[float] = Field(default=None, alias="recommendedSeconds")

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        normalized = str(value or "").strip().lower()
        if normalized not in {item.value for item in QuestionType}:
            raise ValueError(f"unknown question type: {value}")
        return normalized

    @field_validator("recommended_seconds")
    @classmethod
    def _positive_override(cls, value: Optional[float]) -> Optional[float]:
        if value is None or value <= 0:
            return None
        return value

    def to_result(self) -> ClassificationResult:
        return ClassificationResult(
            question_type=QuestionType(self.type),
            confidence=float(self.confidence),
            recommended_seconds=self.recommended_seconds,
        )


class HttpQuestionClassifier:
    """
    Client for the classification endpoint of the web backend.
    Raises ClassificationError on transport failure or an invalid body;
    the coach owns the fallback.
    """

    def __init__(
        self,
        base_url: str,
        timeout_sec: float = COACH_CLASSIFICATION_TIMEOUT_MS / 1000.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = str(base_url or "").strip().rstrip("/")
        if not self.base_url:
            raise ValueError("base_url is required")
        self.timeout_sec = float(timeout_sec)
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_sec)
        return self._client

    async def classify(self, question_text: str, context: Optional[str] = None) -> ClassificationResult:
        body: dict = {"questionText": str(question_text or "")}
        if context:
            body["context"] = str(context)

        try:
            response = await self._get_client().post(f"{self.base_url}{CLASSIFY_PATH}", json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise ClassificationError(f"classification request failed: {exc}") from exc
        except ValueError as exc:
            raise ClassificationError("classification response was not JSON") from exc

        try:
            return ClassificationPayload.model_validate(data).to_result()
        except ValidationError as exc:
            raise ClassificationError(f"invalid classification payload: {exc.error_count()} errors") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class ClassificationCache:
    """Normalized question text -> result, with a fixed TTL."""

    def __init__(self, ttl_sec: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = float(ttl_sec)
        self._clock = clock
        self._entries: dict[str, tuple[ClassificationResult, float]] = {}

    @staticmethod
    def key_for(question_text: str) -> str:
        return normalize_text(question_text)[:200]

    def get(self, question_text: str) -> Optional[ClassificationResult]:
        key = self.key_for(question_text)
        entry = self._entries.get(key)
        if entry is None:
            return None
        result, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return result

    def put(self, question_text: str, result: ClassificationResult) -> None:
        if self.ttl_sec <= 0:
            return
        self._entries[self.key_for(question_text)] = (result, self._clock() + self.ttl_sec)

    def discard(self, question_text: str) -> None:
        self._entries.pop(self.key_for(question_text), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def build_question_classifier(base_url: Optional[str] = None) -> QuestionClassifier:
    url = str(base_url if base_url is not None else COACH_CLASSIFIER_URL).strip()
    if url:
        logger.info("question classifier: http | base_url=%s", url)
        return HttpQuestionClassifier(base_url=url)
    logger.info("question classifier: heuristic")
    return HeuristicQuestionClassifier()
