from livecoach.coaching.budgets import DEFAULT_QUESTION_BUDGETS, NUDGE_MESSAGES, QUESTION_TYPE_LABELS, BudgetTable
from livecoach.coaching.models import (
    ClassificationResult,
    CoachingConfig,
    CoachingEndReason,
    CoachingSession,
    CoachingState,
    NudgeType,
    QuestionBudget,
    QuestionType,
)

__all__ = [
    "BudgetTable",
    "ClassificationResult",
    "CoachingConfig",
    "CoachingEndReason",
    "CoachingSession",
    "CoachingState",
    "DEFAULT_QUESTION_BUDGETS",
    "NUDGE_MESSAGES",
    "NudgeType",
    "QUESTION_TYPE_LABELS",
    "QuestionBudget",
    "QuestionType",
]
