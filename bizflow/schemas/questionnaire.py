from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..rules.engine import AgentInvocation, SkillInvocation
from .orchestrator import AgentOutput, QuestionContext


class ProgressModel(BaseModel):
    answered: int
    total: int
    percentage: int
    skipped: int


class AnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    answer: Any = None
    answers: dict[str, Any] = Field(default_factory=dict)
    current_index: int | None = Field(
        default=None,
        ge=0,
        description="Position of the answered question; defaults to its position in the catalog.",
    )
    run_triggers: bool = Field(False, description="Plan and run the agents queued by trigger rules before responding.")


class AnswerResponse(BaseModel):
    question_id: str
    extracted_data: dict[str, Any] = Field(default_factory=dict)
    next_question_index: int
    next_question: dict[str, Any] | None = None
    remaining_count: int
    activated_branch_question_ids: list[str] | None = None
    auto_populated: dict[str, Any] = Field(default_factory=dict)
    agents_to_trigger: list[AgentInvocation] = Field(default_factory=list)
    skills_to_execute: list[SkillInvocation] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)
    updated_answers: dict[str, Any] = Field(default_factory=dict)
    triggered_outputs: list[AgentOutput] = Field(default_factory=list)
    progress: ProgressModel


class ProgressRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)
    current_index: int = Field(0, ge=0)


class OrchestratorRequest(BaseModel):
    message: str = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    question_context: QuestionContext | None = None


class QuestionnaireResponse(BaseModel):
    phases: list[dict[str, Any]]
    question_count: int
