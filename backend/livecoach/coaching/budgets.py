"""
Answer time budgets per question category.

Every category carries target / soft / hard seconds with 0 < soft <= hard.
Longer-form categories (system design, project deep dives) get more room
than light Q&A.
"""
from __future__ import annotations

from typing import Mapping, Optional

from livecoach.coaching.models import NudgeType, QuestionBudget, QuestionType

DEFAULT_QUESTION_BUDGETS: dict[QuestionType, QuestionBudget] = {
    QuestionType.TELL_ME_ABOUT_YOURSELF: QuestionBudget(60, 45, 60),
    QuestionType.PROJECT_DEEP_DIVE: QuestionBudget(120, 90, 120),
    QuestionType.BEHAVIORAL_STAR: QuestionBudget(90, 75, 90),
    QuestionType.SYSTEM_DESIGN: QuestionBudget(180, 150, 180),
    QuestionType.CODING_EXPLANATION: QuestionBudget(75, 60, 75),
    QuestionType.QA_LIGHT: QuestionBudget(45, 35, 45),
    QuestionType.UNKNOWN: QuestionBudget(60, 45, 60),
}

QUESTION_TYPE_LABELS: dict[QuestionType, str] = {
    QuestionType.TELL_ME_ABOUT_YOURSELF: "Background",
    QuestionType.PROJECT_DEEP_DIVE: "Project",
    QuestionType.BEHAVIORAL_STAR: "Behavioral",
    QuestionType.SYSTEM_DESIGN: "System Design",
    QuestionType.CODING_EXPLANATION: "Coding",
    QuestionType.QA_LIGHT: "Q&A",
    QuestionType.UNKNOWN: "General",
}

# Fixed copy, no LLM in the loop
NUDGE_MESSAGES: dict[NudgeType, str] = {
    NudgeType.SOFT: "Land the plane in ~15s. Hit result, then stop.",
    NudgeType.HARD: "Wrap now. Offer to go deeper if needed.",
}


def validate_budgets(budgets: Mapping[QuestionType, QuestionBudget]) -> None:
    missing = [question_type.value for question_type in QuestionType if question_type not in budgets]
    if missing:
        raise ValueError(f"budget table missing categories: {', '.join(missing)}")

    for question_type, budget in budgets.items():
        if budget.target_seconds <= 0:
            raise ValueError(f"{question_type.value}: target_seconds must be positive")
        if budget.soft_threshold_seconds <= 0 or budget.hard_threshold_seconds <= 0:
            raise ValueError(f"{question_type.value}: thresholds must be positive")
        if budget.soft_threshold_seconds > budget.hard_threshold_seconds:
            raise ValueError(f"{question_type.value}: soft threshold exceeds hard threshold")


class BudgetTable:
    def __init__(self, budgets: Optional[Mapping[QuestionType, QuestionBudget]] = None):
        table = dict(budgets if budgets is not None else DEFAULT_QUESTION_BUDGETS)
        validate_budgets(table)
        self._budgets = table

    def get_budget(self, question_type: QuestionType, recommended_seconds: Optional[float] = None) -> QuestionBudget:
        default_budget = self._budgets.get(question_type, self._budgets[QuestionType.UNKNOWN])

        override = float(recommended_seconds or 0.0)
        if override <= 0:
            return default_budget

        # keep the soft/hard proportions of the default budget
        ratio = override / float(default_budget.target_seconds)
        soft = max(1, round(default_budget.soft_threshold_seconds * ratio))
        hard = max(soft, round(default_budget.hard_threshold_seconds * ratio))
        return QuestionBudget(
            target_seconds=override,
            soft_threshold_seconds=soft,
            hard_threshold_seconds=hard,
        )

    @staticmethod
    def label_for(question_type: QuestionType) -> str:
        return QUESTION_TYPE_LABELS.get(question_type, QUESTION_TYPE_LABELS[QuestionType.UNKNOWN])


validate_budgets(DEFAULT_QUESTION_BUDGETS)
