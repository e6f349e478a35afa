from __future__ import annotations

import json
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from ..core.logging import get_logger
from ..dependencies import get_catalog, get_flow, get_orchestrator, get_rule_engine
from ..flow.catalog import QuestionCatalog
from ..flow.navigation import QuestionFlow
from ..orchestration.question_flow import QuestionAwareOrchestrator, build_orchestrator_context
from ..rules.engine import RuleTriggerEngine
from ..schemas.orchestrator import AgentOutput, OrchestrationResult
from ..schemas.questionnaire import (
    AnswerRequest,
    AnswerResponse,
    OrchestratorRequest,
    ProgressModel,
    ProgressRequest,
    QuestionnaireResponse,
)

logger = get_logger(name=__name__)

router = APIRouter()


def _format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


@router.get("/questionnaire", response_model=QuestionnaireResponse, tags=["questionnaire"])
async def get_questionnaire(catalog: QuestionCatalog = Depends(get_catalog)) -> QuestionnaireResponse:
    return QuestionnaireResponse(
        phases=[phase.model_dump(mode="json") for phase in catalog.phases],
        question_count=len(catalog),
    )


@router.post("/questionnaire/progress", response_model=ProgressModel, tags=["questionnaire"])
async def questionnaire_progress(
    payload: ProgressRequest,
    catalog: QuestionCatalog = Depends(get_catalog),
    flow: QuestionFlow = Depends(get_flow),
) -> ProgressModel:
    progress = flow.true_progress(catalog.flat_questions(), payload.current_index, payload.answers)
    return ProgressModel(
        answered=progress.answered,
        total=progress.total,
        percentage=progress.percentage,
        skipped=progress.skipped,
    )


@router.post("/questionnaire/answer", response_model=AnswerResponse, tags=["questionnaire"])
async def submit_answer(
    payload: AnswerRequest,
    catalog: QuestionCatalog = Depends(get_catalog),
    flow: QuestionFlow = Depends(get_flow),
    rules: RuleTriggerEngine = Depends(get_rule_engine),
    orchestrator: QuestionAwareOrchestrator = Depends(get_orchestrator),
) -> AnswerResponse:
    questions = catalog.flat_questions()
    current_index = payload.current_index
    if current_index is None:
        ids = [question.id for question in questions]
        if payload.question_id not in ids:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown question: {payload.question_id}",
            )
        current_index = ids.index(payload.question_id)

    outcome = flow.process_one_answer(payload.question_id, payload.answer, payload.answers, questions, current_index)
    triggered = rules.process_answer(payload.question_id, payload.answer, payload.answers)

    updated = dict(outcome.updated_answers)
    for field, value in triggered.auto_populated.items():
        if value is not None:
            updated.setdefault(field, value)

    next_question = None
    if outcome.next_question_index < len(questions):
        next_question = questions[outcome.next_question_index].model_dump(mode="json")
    progress = flow.true_progress(questions, outcome.next_question_index, updated)

    triggered_outputs: list[AgentOutput] = []
    if payload.run_triggers and triggered.agents_to_trigger:
        phase = catalog.phase_for_question(payload.question_id)
        phase_id = phase.id if phase is not None else ""
        phase_index = catalog.phases.index(phase) if phase is not None else 0
        triggered_outputs = await orchestrator.run_triggered(
            triggered, build_orchestrator_context(updated, phase_id, phase_index)
        )

    logger.info(
        "answer_submitted",
        question_id=payload.question_id,
        next_index=outcome.next_question_index,
        agents=len(triggered.agents_to_trigger),
        skills=len(triggered.skills_to_execute),
    )
    return AnswerResponse(
        question_id=payload.question_id,
        extracted_data=outcome.extracted_data,
        next_question_index=outcome.next_question_index,
        next_question=next_question,
        remaining_count=outcome.remaining_count,
        activated_branch_question_ids=outcome.activated_branch_question_ids,
        auto_populated=triggered.auto_populated,
        agents_to_trigger=triggered.agents_to_trigger,
        skills_to_execute=triggered.skills_to_execute,
        validation_errors=triggered.validation_errors,
        updated_answers=updated,
        triggered_outputs=triggered_outputs,
        progress=ProgressModel(
            answered=progress.answered,
            total=progress.total,
            percentage=progress.percentage,
            skipped=progress.skipped,
        ),
    )


@router.post("/orchestrator", response_model=OrchestrationResult, tags=["orchestrator"])
async def orchestrate(
    payload: OrchestratorRequest,
    orchestrator: QuestionAwareOrchestrator = Depends(get_orchestrator),
) -> OrchestrationResult:
    if payload.question_context is not None:
        return await orchestrator.process_question_request(payload.message, payload.question_context)
    return await orchestrator.process_request(payload.message, payload.context)


@router.get("/orchestrator/stream", tags=["orchestrator"])
async def orchestrate_stream(
    message: str = Query(..., min_length=1),
    current_phase: str | None = Query(None, alias="currentPhase"),
    language: str | None = Query(None),
    orchestrator: QuestionAwareOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    context: dict[str, Any] = {}
    if current_phase:
        context["currentPhase"] = int(current_phase) if current_phase.isdigit() else current_phase
    if language:
        context["language"] = language

    async def event_stream() -> AsyncIterator[str]:
        async for event, data in orchestrator.stream_request(message, context):
            yield _format_sse(event, data)

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)
