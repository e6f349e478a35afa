"""Navigation over the question flow graph.

Positions are indices into an ordered question list supplied by the caller.
Skipped questions never count toward remaining totals or progress.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ..core.logging import get_logger
from .branching import BranchTable, default_branch_table
from .catalog import Question, QuestionCatalog
from .extraction import extract_from_answer
from .skip_rules import SkipRuleBook, default_skip_rules

logger = get_logger(name=__name__)

QuestionRef = Question | Mapping[str, Any] | str


def question_id_of(item: QuestionRef) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        return str(item["id"])
    return item.id


@dataclass(slots=True)
class Progress:
    answered: int
    total: int
    percentage: int
    skipped: int


@dataclass(slots=True)
class AnswerOutcome:
    extracted_data: dict[str, Any]
    next_question_index: int
    remaining_count: int
    activated_branch_question_ids: list[str] | None = None
    updated_answers: dict[str, Any] = field(default_factory=dict)


class QuestionFlow:
    """Skip, branch and progress resolution for one questionnaire definition."""

    def __init__(
        self,
        *,
        catalog: QuestionCatalog | None = None,
        skip_rules: SkipRuleBook | None = None,
        branches: BranchTable | None = None,
    ) -> None:
        self.catalog = catalog
        self.skip_rules = skip_rules if skip_rules is not None else default_skip_rules()
        self.branches = branches if branches is not None else default_branch_table()

    def should_skip(self, question_id: str, answers: Mapping[str, Any]) -> bool:
        return self.skip_rules.should_skip(question_id, answers)

    def skip_reason(self, question_id: str, answers: Mapping[str, Any]) -> str | None:
        return self.skip_rules.skip_reason(question_id, answers)

    def skipped_questions(self, answers: Mapping[str, Any]) -> list[str]:
        return self.skip_rules.skipped_questions(answers)

    def next_question_index(
        self,
        questions: Sequence[QuestionRef],
        start_index: int,
        answers: Mapping[str, Any],
    ) -> int:
        index = max(start_index, 0)
        while index < len(questions):
            if not self.should_skip(question_id_of(questions[index]), answers):
                return index
            index += 1
        return index

    def count_remaining(
        self,
        questions: Sequence[QuestionRef],
        current_index: int,
        answers: Mapping[str, Any],
    ) -> int:
        return sum(
            1
            for item in questions[max(current_index, 0):]
            if not self.should_skip(question_id_of(item), answers)
        )

    def true_progress(
        self,
        questions: Sequence[QuestionRef],
        current_index: int,
        answers: Mapping[str, Any],
    ) -> Progress:
        answered = 0
        skipped = 0
        for item in questions[: max(current_index, 0)]:
            question_id = question_id_of(item)
            if self.should_skip(question_id, answers):
                skipped += 1
            elif question_id in answers:
                answered += 1
        remaining = self.count_remaining(questions, current_index, answers)
        total = answered + remaining
        percentage = int(answered * 100 / total + 0.5) if total > 0 else 0
        return Progress(answered=answered, total=total, percentage=percentage, skipped=skipped)

    def branch_questions(self, question_id: str, answer: Any) -> list[str]:
        return self.branches.branch_questions(question_id, answer)

    def active_branches(self, answers: Mapping[str, Any]) -> dict[str, Any]:
        return self.branches.active_branches(answers)

    def is_branch_point(self, question_id: str) -> bool:
        if self.catalog is not None:
            question = self.catalog.question(question_id)
            if question is not None:
                return question.branch_point
        return question_id in self.branches

    def process_one_answer(
        self,
        question_id: str,
        raw_answer: Any,
        answers: Mapping[str, Any],
        questions: Sequence[QuestionRef],
        current_index: int,
    ) -> AnswerOutcome:
        """Record one answer and work out where the questionnaire goes next.

        The caller owns persistence: ``updated_answers`` is the answer set the
        outcome was computed against and should be stored along with
        ``next_question_index``.
        """
        extracted = extract_from_answer(question_id, raw_answer)
        updated = {**answers, question_id: raw_answer}
        next_index = self.next_question_index(questions, current_index + 1, updated)
        remaining = self.count_remaining(questions, next_index, updated)
        activated = None
        if self.is_branch_point(question_id):
            activated = self.branch_questions(question_id, raw_answer)
        logger.debug(
            "answer_processed",
            question_id=question_id,
            next_index=next_index,
            remaining=remaining,
            branch_activated=activated,
        )
        return AnswerOutcome(
            extracted_data=extracted,
            next_question_index=next_index,
            remaining_count=remaining,
            activated_branch_question_ids=activated,
            updated_answers=updated,
        )
