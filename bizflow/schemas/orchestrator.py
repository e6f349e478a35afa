from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionMode(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


class Intent(BaseModel):
    goal: str = Field(..., min_length=1)
    agents: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    execution_type: ExecutionMode = ExecutionMode.PARALLEL
    reasoning: str = ""
    context_requirements: list[str] = Field(default_factory=list)


class Task(BaseModel):
    id: str
    agent_id: str
    agent_name: str
    description: str
    skills: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    priority: int = 0


class ExecutionPlan(BaseModel):
    tasks: list[Task] = Field(default_factory=list)
    execution_type: ExecutionMode = ExecutionMode.PARALLEL
    estimated_duration_seconds: int = 0


class ToolCallRecord(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: str | None = None


class AgentOutput(BaseModel):
    task_id: str
    agent_id: str
    agent_name: str
    output: str = ""
    skills_used: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    success: bool = True
    error: str | None = None


class QuestionConfigSummary(BaseModel):
    should_skip: bool
    skip_reason: str | None = None
    configured_agents: list[str] = Field(default_factory=list)
    configured_skills: list[str] = Field(default_factory=list)
    context_fields: list[str] = Field(default_factory=list)
    is_branching_point: bool = False


class QuestionContext(BaseModel):
    """Questionnaire position sent along with an answer; unknown keys pass through to agents."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    question_id: str = Field(..., alias="questionId", min_length=1)
    question_text: str = Field("", alias="questionText")
    phase_id: str = Field(..., alias="phaseId")
    phase_index: int = Field(0, alias="phaseIndex")
    all_answers: dict[str, Any] = Field(default_factory=dict, alias="allAnswers")
    language: str | None = None
    next_question: dict[str, Any] | None = Field(None, alias="nextQuestion")

    def as_context(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class OrchestrationResult(BaseModel):
    synthesis: str
    agent_outputs: list[AgentOutput] = Field(default_factory=list)
    intent: Intent
    plan: ExecutionPlan
    execution_time_ms: float = 0.0
    question_config: QuestionConfigSummary | None = None
