from __future__ import annotations

from bizflow.flow.catalog import QuestionCatalog
from bizflow.flow.extraction import extract_from_answer
from bizflow.flow.navigation import QuestionFlow

REVENUE_FLOW = ["revenue_model", "billing_frequency", "churn_rate", "expansion_revenue", "nrr", "target_cac"]


def test_next_question_skips_hidden_questions(flow: QuestionFlow) -> None:
    answers = {"revenue_model": "one_time"}
    assert flow.next_question_index(REVENUE_FLOW, 1, answers) == 5
    assert flow.next_question_index(REVENUE_FLOW, 1, {"revenue_model": "subscription"}) == 1


def test_next_question_returns_end_when_everything_left_is_skipped(flow: QuestionFlow) -> None:
    questions = ["churn_rate", "nrr"]
    assert flow.next_question_index(questions, 0, {"revenue_model": "one_time"}) == len(questions)


def test_count_remaining_ignores_skipped_questions(flow: QuestionFlow) -> None:
    assert flow.count_remaining(REVENUE_FLOW, 0, {"revenue_model": "one_time"}) == 2
    assert flow.count_remaining(REVENUE_FLOW, 0, {}) == 6


def test_true_progress_excludes_skipped_questions_from_both_sides(flow: QuestionFlow) -> None:
    answers = {"revenue_model": "one_time"}
    progress = flow.true_progress(REVENUE_FLOW, 5, answers)
    assert progress.answered == 1
    assert progress.skipped == 4
    assert progress.total == 2
    assert progress.percentage == 50


def test_true_progress_rounds_and_handles_empty_lists(flow: QuestionFlow) -> None:
    questions = ["language", "user_name", "user_email"]
    progress = flow.true_progress(questions, 2, {"language": "en-US", "user_name": "Asha"})
    assert (progress.answered, progress.total, progress.percentage) == (2, 3, 67)
    assert flow.true_progress([], 0, {}).percentage == 0


def test_true_progress_counts_present_none_answers(flow: QuestionFlow) -> None:
    questions = ["q1", "q2", "q3", "q4"]
    progress = flow.true_progress(questions, 2, {"q1": "x", "q2": None})
    assert (progress.answered, progress.total, progress.skipped) == (2, 4, 0)
    assert progress.percentage == 50


def test_branch_questions_for_existing_business_path(flow: QuestionFlow) -> None:
    expected = [
        "existing_name",
        "existing_website",
        "existing_industry",
        "business_start_date",
        "current_revenue",
        "legal_entity",
        "current_products",
    ]
    assert flow.branch_questions("business_path", "existing") == expected
    assert flow.branch_questions("business_path", "unknown") == []
    assert flow.branch_questions("user_name", "existing") == []


def test_active_branches_only_reports_answered_branch_points(flow: QuestionFlow) -> None:
    answers = {"business_path": "new", "customer_type": "", "user_name": "Asha"}
    assert flow.active_branches(answers) == {"business_path": "new"}


def test_process_one_answer_moves_past_questions_hidden_by_the_new_answer(
    flow: QuestionFlow, catalog: QuestionCatalog
) -> None:
    questions = catalog.flat_questions()
    ids = [question.id for question in questions]
    index = ids.index("revenue_model")

    outcome = flow.process_one_answer("revenue_model", "one_time", {}, questions, index)

    assert ids[outcome.next_question_index] != "billing_frequency"
    assert not flow.should_skip(ids[outcome.next_question_index], outcome.updated_answers)
    assert outcome.updated_answers == {"revenue_model": "one_time"}
    assert outcome.activated_branch_question_ids is None
    assert outcome.remaining_count == flow.count_remaining(questions, outcome.next_question_index, outcome.updated_answers)


def test_process_one_answer_reports_branch_activation(flow: QuestionFlow, catalog: QuestionCatalog) -> None:
    questions = catalog.flat_questions()
    index = [question.id for question in questions].index("business_path")

    outcome = flow.process_one_answer("business_path", "existing", {}, questions, index)

    assert outcome.activated_branch_question_ids == flow.branch_questions("business_path", "existing")
    assert questions[outcome.next_question_index].id not in {"idea_status", "business_idea_detail"}
    assert outcome.next_question_index > index + 2


def test_extractors_pull_structured_fields() -> None:
    idea = extract_from_answer("business_idea_detail", "A SaaS platform for small business accounting")
    assert idea["raw_idea"].startswith("A SaaS")
    assert idea["is_saas"] is True
    assert idea["is_b2b"] is True

    problem = extract_from_answer("customer_problem", "Shops lose 10 hours a week on stock counts")
    assert problem["has_quantified_pain"] is True
    assert problem["pain_urgency"] == "high"

    advantage = extract_from_answer("unique_advantage", "Proprietary algorithm and 10 years experience")
    assert set(advantage["moat_types"]) == {"technology", "expertise"}
    assert advantage["moat_strength"] == "strong"

    other = extract_from_answer("user_name", "Asha")
    assert other["value"] == "Asha"
    assert "timestamp" in other
