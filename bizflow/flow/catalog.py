"""Static phase and question definitions loaded once at process start."""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import ConfigurationError
from ..core.logging import get_logger

logger = get_logger(name=__name__)

DEFAULT_AGENTS: tuple[str, ...] = ("context_collector", "business_planner_lead")


class QuestionType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    CHOICE = "choice"
    MULTISELECT = "multiselect"
    NUMBER = "number"
    AMOUNT = "amount"
    PERCENTAGE = "percentage"
    PERCENTAGE_BREAKDOWN = "percentage_breakdown"
    SLIDER = "slider"
    DATE = "date"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    LIST = "list"
    MILESTONE = "milestone"
    CHECKPOINT = "checkpoint"


class QuestionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    label: str


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    prompt: str
    type: QuestionType
    required: bool = False
    options: tuple[QuestionOption, ...] = ()
    placeholder: str | None = None
    helper_text: str | None = None
    agents: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    context_fields: tuple[str, ...] = ()
    agent_hint: str | None = None
    branch_point: bool = False


class Phase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    number: int = Field(..., ge=1)
    name: str
    description: str = ""
    estimated_time: str | None = None
    default_agents: tuple[str, ...] = ()
    default_skills: tuple[str, ...] = ()
    questions: tuple[Question, ...] = ()


class QuestionCatalog:
    """Read-only registry of phases and questions keyed by id."""

    def __init__(self, phases: Iterable[Phase]) -> None:
        self._phases: tuple[Phase, ...] = tuple(phases)
        phase_index: dict[str, Phase] = {}
        question_index: dict[str, Question] = {}
        question_phase: dict[str, str] = {}
        for phase in self._phases:
            if phase.id in phase_index:
                raise ConfigurationError(f"Duplicate phase id: {phase.id}")
            phase_index[phase.id] = phase
            for question in phase.questions:
                if question.id in question_index:
                    raise ConfigurationError(f"Duplicate question id: {question.id}")
                question_index[question.id] = question
                question_phase[question.id] = phase.id
        self._phase_index = MappingProxyType(phase_index)
        self._question_index = MappingProxyType(question_index)
        self._question_phase = MappingProxyType(question_phase)

    @classmethod
    def from_file(cls, path: Path) -> "QuestionCatalog":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Unable to read questionnaire catalog {path}: {exc}") from exc
        catalog = cls.from_payload(payload)
        logger.info(
            "question_catalog_loaded",
            path=str(path),
            phases=len(catalog.phases),
            questions=len(catalog),
        )
        return catalog

    @classmethod
    def from_payload(cls, payload: Iterable[Mapping[str, Any]]) -> "QuestionCatalog":
        try:
            phases = [Phase.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid questionnaire catalog: {exc}") from exc
        return cls(phases)

    def __len__(self) -> int:
        return len(self._question_index)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._question_index

    @property
    def phases(self) -> tuple[Phase, ...]:
        return self._phases

    def phase(self, phase_id: str) -> Phase | None:
        return self._phase_index.get(phase_id)

    def question(self, question_id: str) -> Question | None:
        return self._question_index.get(question_id)

    def phase_for_question(self, question_id: str) -> Phase | None:
        phase_id = self._question_phase.get(question_id)
        return self._phase_index.get(phase_id) if phase_id else None

    def flat_questions(self) -> list[Question]:
        return [question for phase in self._phases for question in phase.questions]

    def agents_for_question(self, question_id: str, phase_id: str) -> list[str]:
        question = self.question(question_id)
        if question is not None and question.agents:
            return list(question.agents)
        phase = self.phase(phase_id)
        if phase is None or not phase.default_agents:
            return list(DEFAULT_AGENTS)
        return list(phase.default_agents)

    def skills_for_question(self, question_id: str, phase_id: str) -> list[str]:
        question = self.question(question_id)
        if question is not None and question.skills:
            return list(question.skills)
        phase = self.phase(phase_id)
        return list(phase.default_skills) if phase is not None else []

    def context_fields(self, question_id: str) -> list[str]:
        question = self.question(question_id)
        return list(question.context_fields) if question is not None else []

    def branch_point_ids(self) -> list[str]:
        return [question.id for question in self.flat_questions() if question.branch_point]
