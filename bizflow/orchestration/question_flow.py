from __future__ import annotations

import time
from typing import Any, Mapping, Sequence

from ..core.logging import get_logger
from ..flow.catalog import QuestionCatalog
from ..flow.navigation import AnswerOutcome, Progress, QuestionFlow, QuestionRef
from ..schemas.orchestrator import (
    ExecutionMode,
    ExecutionPlan,
    Intent,
    OrchestrationResult,
    QuestionConfigSummary,
    QuestionContext,
)
from .executor import TaskExecutor
from .orchestrator import Orchestrator
from .planner import IntentPlanner
from .synthesizer import ResponseSynthesizer

logger = get_logger(name=__name__)

SKIPPED_REASON = "Skipped based on previous answers"

_PROMOTED_FIELDS: tuple[tuple[str, str], ...] = (
    ("language", "language"),
    ("user_name", "userName"),
    ("business_path", "businessPath"),
    ("customer_type", "customerType"),
    ("business_model_type", "businessModelType"),
    ("risk_tolerance", "riskTolerance"),
)


def build_orchestrator_context(answers: Mapping[str, Any], phase_id: str, phase_index: int) -> dict[str, Any]:
    context: dict[str, Any] = {
        "currentPhase": phase_index,
        "phaseId": phase_id,
        "allAnswers": dict(answers),
    }
    for answer_key, context_key in _PROMOTED_FIELDS:
        if answers.get(answer_key):
            context[context_key] = answers[answer_key]
    return context


class QuestionAwareOrchestrator(Orchestrator):
    """Routes questionnaire answers to the agents configured for the question.

    Skipped questions return immediately. Anything that goes wrong on the
    configured route falls back to :meth:`Orchestrator.process_request`.
    """

    entry_point = "question"

    def __init__(
        self,
        *,
        planner: IntentPlanner,
        executor: TaskExecutor,
        synthesizer: ResponseSynthesizer,
        catalog: QuestionCatalog,
        flow: QuestionFlow,
    ) -> None:
        super().__init__(planner=planner, executor=executor, synthesizer=synthesizer)
        self.catalog = catalog
        self.flow = flow

    async def process_question_request(
        self,
        message: str,
        question_context: QuestionContext,
    ) -> OrchestrationResult:
        started = time.perf_counter()
        question_id = question_context.question_id
        phase_id = question_context.phase_id
        answers = question_context.all_answers
        logger.info("question_orchestration_started", question_id=question_id, phase_id=phase_id)

        try:
            if self.flow.should_skip(question_id, answers):
                reason = self.flow.skip_reason(question_id, answers) or SKIPPED_REASON
                logger.info("question_skipped", question_id=question_id, reason=reason)
                return self._finish(
                    "",
                    [],
                    Intent(goal="Question skipped", reasoning=reason),
                    ExecutionPlan(),
                    started,
                    status="skipped",
                    question_config=QuestionConfigSummary(should_skip=True, skip_reason=reason),
                )

            summary = self.question_config(question_id, phase_id)
            intent = Intent(
                goal=f"Process question: {question_context.question_text}",
                agents=summary.configured_agents,
                skills=summary.configured_skills,
                execution_type=ExecutionMode.PARALLEL,
                reasoning=f"Agents selected from question configuration for {question_id}",
                context_requirements=summary.context_fields,
            )
            logger.info("question_agents_configured", question_id=question_id, agents=intent.agents, skills=intent.skills)

            plan = self.planner.create_plan(intent)
            context = {
                **question_context.as_context(),
                **build_orchestrator_context(answers, phase_id, question_context.phase_index),
            }
            outputs = await self.executor.execute(plan, context)
            synthesis = await self.synthesizer.synthesize(
                outputs,
                message,
                next_question=question_context.next_question,
                language=question_context.language or answers.get("language"),
            )
        except Exception as exc:
            logger.warning("question_orchestration_fallback", question_id=question_id, error=str(exc))
            return await self.process_request(message, question_context.as_context())

        return self._finish(synthesis, outputs, intent, plan, started, status="completed", question_config=summary)

    def question_config(self, question_id: str, phase_id: str) -> QuestionConfigSummary:
        return QuestionConfigSummary(
            should_skip=False,
            configured_agents=self.catalog.agents_for_question(question_id, phase_id),
            configured_skills=self.catalog.skills_for_question(question_id, phase_id),
            context_fields=self.catalog.context_fields(question_id),
            is_branching_point=self.flow.is_branch_point(question_id),
        )

    def recommended_agents(self, question_id: str, phase_id: str, answers: Mapping[str, Any]) -> dict[str, Any]:
        if self.flow.should_skip(question_id, answers):
            return {"agents": [], "skills": [], "should_skip": True}
        return {
            "agents": self.catalog.agents_for_question(question_id, phase_id),
            "skills": self.catalog.skills_for_question(question_id, phase_id),
            "should_skip": False,
        }

    def process_user_answer(
        self,
        question_id: str,
        answer: Any,
        answers: Mapping[str, Any],
        questions: Sequence[QuestionRef],
        current_index: int,
    ) -> AnswerOutcome:
        return self.flow.process_one_answer(question_id, answer, answers, questions, current_index)

    def progress(self, questions: Sequence[QuestionRef], current_index: int, answers: Mapping[str, Any]) -> Progress:
        return self.flow.true_progress(questions, current_index, answers)
