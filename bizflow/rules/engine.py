"""Rule trigger engine.

Maps a just-answered field to trigger rules. Every rule whose conditions all
hold contributes auto-populated fields, agent prompts and skill invocations.
Rules apply in registration order, and a failing directive never blocks its
siblings.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Callable, Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.errors import ConfigurationError, FormulaEvaluationError
from ..core.logging import get_logger
from ..core.metrics import RULE_FIRINGS_TOTAL
from .conditions import Condition, all_hold
from .formula import Formula
from .lookup import LookupTables, default_lookup_tables

logger = get_logger(name=__name__)

ParamsBuilder = Callable[[Any, Mapping[str, Any]], dict[str, Any]]

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


@lru_cache(maxsize=256)
def _compile(source: str) -> Formula:
    return Formula(source)


class AutoPopulate(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_field: str = Field(..., min_length=1)
    source: Literal["static", "lookup", "calculation", "agent", "skill"]
    value: Any = None
    lookup_table: str | None = None
    formula: str | None = None

    @model_validator(mode="after")
    def _check_source(self) -> "AutoPopulate":
        if self.source == "lookup" and not self.lookup_table:
            raise ValueError(f"lookup directive for {self.target_field} needs lookup_table")
        if self.source == "calculation":
            if not self.formula:
                raise ValueError(f"calculation directive for {self.target_field} needs formula")
            try:
                _compile(self.formula)
            except FormulaEvaluationError as exc:
                raise ValueError(str(exc)) from exc
        return self

    @property
    def compiled_formula(self) -> Formula | None:
        return _compile(self.formula) if self.formula else None


class AgentTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: str = Field(..., min_length=1)
    prompt_template: str = Field(..., min_length=1)
    guard: tuple[Condition, ...] = ()


class SkillTrigger(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    skill_id: str = Field(..., min_length=1)
    params_builder: ParamsBuilder


class TriggerRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    trigger_field: str = Field(..., min_length=1)
    conditions: tuple[Condition, ...] = ()
    auto_populate: tuple[AutoPopulate, ...] = ()
    trigger_agents: tuple[AgentTrigger, ...] = ()
    trigger_skills: tuple[SkillTrigger, ...] = ()


class AgentInvocation(BaseModel):
    agent_id: str
    prompt: str


class SkillInvocation(BaseModel):
    skill_id: str
    params: dict[str, Any]


class RuleTriggerResult(BaseModel):
    auto_populated: dict[str, Any] = Field(default_factory=dict)
    agents_to_trigger: list[AgentInvocation] = Field(default_factory=list)
    skills_to_execute: list[SkillInvocation] = Field(default_factory=list)
    thinking_log: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)


def _render(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(_render(item) for item in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def interpolate(template: str, context: Mapping[str, Any]) -> str:
    """Fill ``{{field}}`` tokens from context; unknown fields stay as written."""

    def _replace(match: re.Match[str]) -> str:
        value = context.get(match.group(1))
        if value is None:
            return match.group(0)
        return _render(value)

    return _PLACEHOLDER.sub(_replace, template)


class RuleTriggerEngine:
    def __init__(
        self,
        rules: Iterable[TriggerRule],
        *,
        lookup_tables: LookupTables | None = None,
    ) -> None:
        self._lookup_tables = lookup_tables if lookup_tables is not None else default_lookup_tables()
        index: dict[str, list[TriggerRule]] = {}
        for rule in rules:
            for directive in rule.auto_populate:
                if directive.source == "lookup" and directive.lookup_table not in self._lookup_tables:
                    raise ConfigurationError(
                        f"Rule on {rule.trigger_field} references unknown lookup table {directive.lookup_table!r}"
                    )
            index.setdefault(rule.trigger_field, []).append(rule)
        self._index: dict[str, tuple[TriggerRule, ...]] = {key: tuple(value) for key, value in index.items()}

    @property
    def trigger_fields(self) -> list[str]:
        return list(self._index)

    @property
    def lookup_tables(self) -> LookupTables:
        return self._lookup_tables

    def rules_for(self, field: str) -> tuple[TriggerRule, ...]:
        return self._index.get(field, ())

    def process_answer(
        self,
        question_id: str,
        answer: Any,
        all_answers: Mapping[str, Any],
    ) -> RuleTriggerResult:
        result = RuleTriggerResult()
        result.thinking_log.append(f"Processing answer for {question_id}...")
        merged = {**all_answers, question_id: answer}

        for rule in self._index.get(question_id, ()):
            if not all_hold(rule.conditions, all_answers):
                logger.debug("rule_conditions_unmet", trigger_field=question_id)
                continue
            RULE_FIRINGS_TOTAL.labels(trigger_field=question_id).inc()
            if rule.auto_populate:
                result.thinking_log.append("Auto-populating related fields...")
                self._apply_auto_populate(rule, answer, merged, result)
            if rule.trigger_agents:
                result.thinking_log.append("Identifying relevant AI agents...")
                self._collect_agents(rule, merged, result)
            if rule.trigger_skills:
                result.thinking_log.append("Preparing business calculations...")
                self._collect_skills(rule, answer, all_answers, result)

        logger.info(
            "rule_processing_complete",
            question_id=question_id,
            auto_populated=len(result.auto_populated),
            agents=len(result.agents_to_trigger),
            skills=len(result.skills_to_execute),
            errors=len(result.validation_errors),
        )
        return result

    def resolve(self, directive: AutoPopulate, answer: Any, context: Mapping[str, Any]) -> Any:
        if directive.source == "static":
            return directive.value
        if directive.source == "lookup":
            return self._lookup_tables.resolve(directive.lookup_table or "", answer)
        if directive.source == "calculation":
            formula = directive.compiled_formula
            return formula.evaluate(context) if formula is not None else None
        # agent and skill sourced values arrive asynchronously through the orchestrator
        return None

    def _apply_auto_populate(
        self,
        rule: TriggerRule,
        answer: Any,
        context: Mapping[str, Any],
        result: RuleTriggerResult,
    ) -> None:
        for directive in rule.auto_populate:
            try:
                value = self.resolve(directive, answer, context)
            except FormulaEvaluationError as exc:
                logger.warning("auto_populate_formula_failed", target=directive.target_field, error=str(exc))
                result.validation_errors.append(f"Failed to auto-populate {directive.target_field}: {exc}")
                continue
            if value is not None:
                result.auto_populated[directive.target_field] = value

    def _collect_agents(self, rule: TriggerRule, context: Mapping[str, Any], result: RuleTriggerResult) -> None:
        for trigger in rule.trigger_agents:
            if trigger.guard and not all_hold(trigger.guard, context):
                continue
            result.agents_to_trigger.append(
                AgentInvocation(agent_id=trigger.agent_id, prompt=interpolate(trigger.prompt_template, context))
            )

    def _collect_skills(
        self,
        rule: TriggerRule,
        answer: Any,
        all_answers: Mapping[str, Any],
        result: RuleTriggerResult,
    ) -> None:
        for trigger in rule.trigger_skills:
            try:
                params = trigger.params_builder(answer, all_answers)
            except Exception as exc:
                logger.warning("skill_params_failed", skill=trigger.skill_id, error=str(exc))
                result.validation_errors.append(f"Failed to build parameters for {trigger.skill_id}: {exc}")
                continue
            result.skills_to_execute.append(SkillInvocation(skill_id=trigger.skill_id, params=params))
