import pytest

from livecoach.coaching.budgets import DEFAULT_QUESTION_BUDGETS, BudgetTable, validate_budgets
from livecoach.coaching.models import QuestionBudget, QuestionType


def test_every_category_has_a_consistent_budget():
    for question_type in QuestionType:
        budget = DEFAULT_QUESTION_BUDGETS[question_type]
        assert 0 < budget.soft_threshold_seconds <= budget.hard_threshold_seconds

    system_design = DEFAULT_QUESTION_BUDGETS[QuestionType.SYSTEM_DESIGN]
    qa_light = DEFAULT_QUESTION_BUDGETS[QuestionType.QA_LIGHT]
    assert system_design.target_seconds > qa_light.target_seconds


def test_override_scales_thresholds_proportionally():
    table = BudgetTable()

    budget = table.get_budget(QuestionType.SYSTEM_DESIGN, recommended_seconds=90)

    assert budget.target_seconds == 90
    assert budget.soft_threshold_seconds == 75
    assert budget.hard_threshold_seconds == 90


def test_tiny_override_keeps_thresholds_positive_and_ordered():
    budget = BudgetTable().get_budget(QuestionType.QA_LIGHT, recommended_seconds=0.5)

    assert budget.soft_threshold_seconds >= 1
    assert budget.hard_threshold_seconds >= budget.soft_threshold_seconds


def test_non_positive_override_uses_default():
    table = BudgetTable()
    assert table.get_budget(QuestionType.BEHAVIORAL_STAR, 0) == DEFAULT_QUESTION_BUDGETS[QuestionType.BEHAVIORAL_STAR]
    assert table.get_budget(QuestionType.BEHAVIORAL_STAR, None).target_seconds == 90


def test_validate_budgets_rejects_bad_tables():
    broken = dict(DEFAULT_QUESTION_BUDGETS)
    broken[QuestionType.QA_LIGHT] = QuestionBudget(45, 50, 40)
    with pytest.raises(ValueError):
        validate_budgets(broken)

    missing = dict(DEFAULT_QUESTION_BUDGETS)
    missing.pop(QuestionType.UNKNOWN)
    with pytest.raises(ValueError):
        BudgetTable(missing)


def test_labels():
    assert BudgetTable.label_for(QuestionType.SYSTEM_DESIGN) == "System Design"
    assert BudgetTable.label_for(QuestionType.UNKNOWN) == "General"
