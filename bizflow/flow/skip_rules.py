"""Declarative skip rules deciding which questions are hidden by earlier answers.

A rule guards one question with one or more ``(field, operator, value)``
predicates; the question is skipped when any predicate holds. Predicates are
plain data, so the rule table can be serialized and tested without executing
arbitrary callables. A predicate that cannot be evaluated never hides its
question.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..core.errors import ConfigurationError, RuleEvaluationError
from ..core.logging import get_logger

logger = get_logger(name=__name__)


class PredicateOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    IN = "in"
    NOT_IN = "not_in"


class FieldPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)
    operator: PredicateOperator
    value: Any = None

    @model_validator(mode="after")
    def _check_membership_value(self) -> "FieldPredicate":
        if self.operator in (PredicateOperator.IN, PredicateOperator.NOT_IN):
            if not isinstance(self.value, (list, tuple)):
                raise ValueError(f"operator '{self.operator.value}' requires a list value")
        return self

    def holds(self, answers: Mapping[str, Any]) -> bool:
        actual = answers.get(self.field)
        try:
            if self.operator is PredicateOperator.EQUALS:
                return bool(actual == self.value)
            if self.operator is PredicateOperator.NOT_EQUALS:
                return bool(actual != self.value)
            if self.operator is PredicateOperator.IN:
                return actual in self.value
            return actual not in self.value
        except Exception as exc:
            raise RuleEvaluationError(
                f"Cannot evaluate {self.field} {self.operator.value} {self.value!r}: {exc}"
            ) from exc


class SkipRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., min_length=1)
    any_of: tuple[FieldPredicate, ...] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)

    def applies(self, answers: Mapping[str, Any]) -> bool:
        return any(predicate.holds(answers) for predicate in self.any_of)


class SkipRuleBook:
    """Read-only index of skip rules keyed by question id."""

    def __init__(self, rules: Iterable[SkipRule]) -> None:
        self._rules: tuple[SkipRule, ...] = tuple(rules)
        index: dict[str, SkipRule] = {}
        for rule in self._rules:
            if rule.question_id in index:
                raise ConfigurationError(f"Duplicate skip rule for question: {rule.question_id}")
            index[rule.question_id] = rule
        self._index = index

    @classmethod
    def from_payload(cls, payload: Iterable[Mapping[str, Any]]) -> "SkipRuleBook":
        try:
            return cls(SkipRule.model_validate(item) for item in payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid skip rule table: {exc}") from exc

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._index

    @property
    def rules(self) -> tuple[SkipRule, ...]:
        return self._rules

    def rule_for(self, question_id: str) -> SkipRule | None:
        return self._index.get(question_id)

    def _evaluate(self, rule: SkipRule, answers: Mapping[str, Any]) -> bool:
        try:
            return rule.applies(answers)
        except RuleEvaluationError as exc:
            logger.warning("skip_rule_failed", question_id=rule.question_id, error=str(exc))
            return False

    def should_skip(self, question_id: str, answers: Mapping[str, Any]) -> bool:
        rule = self._index.get(question_id)
        if rule is None:
            return False
        return self._evaluate(rule, answers)

    def skip_reason(self, question_id: str, answers: Mapping[str, Any]) -> str | None:
        rule = self._index.get(question_id)
        if rule is None or not self._evaluate(rule, answers):
            return None
        return rule.reason

    def skipped_questions(self, answers: Mapping[str, Any]) -> list[str]:
        return [rule.question_id for rule in self._rules if self._evaluate(rule, answers)]


def _rule(question_id: str, reason: str, *predicates: tuple[str, str, Any]) -> dict[str, Any]:
    return {
        "question_id": question_id,
        "reason": reason,
        "any_of": [{"field": field, "operator": op, "value": value} for field, op, value in predicates],
    }


_B2B_SEGMENTS = ["b2b", "b2b2c", "b2g", "hybrid"]
_ONE_TIME = ("revenue_model", "equals", "one_time")
_BOOTSTRAP = ("external_funding", "equals", "bootstrap")

DEFAULT_SKIP_RULES: tuple[dict[str, Any], ...] = (
    # discovery
    _rule("education_field", "Self-taught users do not have a formal field of study",
          ("education_level", "equals", "self_taught")),
    _rule("industries_worked", "No work experience means no industries worked in",
          ("years_experience", "equals", "0")),
    # business context: new path
    _rule("idea_status", "Existing businesses already have an idea",
          ("business_path", "equals", "existing")),
    _rule("business_idea_detail", "Existing businesses describe their current business instead",
          ("business_path", "equals", "existing")),
    _rule("target_industries", "Existing businesses already know their target industries",
          ("business_path", "equals", "existing")),
    # business context: existing path
    _rule("existing_name", "Only existing businesses have a name",
          ("business_path", "not_equals", "existing")),
    _rule("existing_website", "Only existing businesses may have a website",
          ("business_path", "not_equals", "existing")),
    _rule("existing_industry", "Only existing businesses have a current industry",
          ("business_path", "not_equals", "existing")),
    _rule("business_start_date", "Only existing businesses have a start date",
          ("business_path", "not_equals", "existing")),
    _rule("current_revenue", "Only existing businesses have current revenue",
          ("business_path", "not_equals", "existing")),
    _rule("legal_entity", "Only existing businesses are registered",
          ("business_path", "not_equals", "existing")),
    _rule("current_products", "Only existing businesses have current products",
          ("business_path", "not_equals", "existing")),
    _rule("problem_to_solve", "Users without ideas will get problem suggestions",
          ("idea_status", "equals", "need_suggestions")),
    # market
    _rule("expansion_timeline", "No expansion plan means no timeline needed",
          ("expansion_plan", "not_equals", "yes")),
    _rule("target_regions", "No international plans means no target regions",
          ("international_plan", "not_in", ["yes", "maybe_later"])),
    _rule("target_age", "B2B/B2G does not target age demographics",
          ("customer_type", "in", ["b2b", "b2g"])),
    _rule("target_gender", "B2B/B2G does not target gender demographics",
          ("customer_type", "in", ["b2b", "b2g"])),
    _rule("target_income", "B2B/B2G does not target income levels of individuals",
          ("customer_type", "in", ["b2b", "b2g"])),
    _rule("target_education", "B2B/B2G does not target education levels",
          ("customer_type", "in", ["b2b", "b2g"])),
    _rule("customer_interests", "B2B/B2G does not target lifestyle interests",
          ("customer_type", "in", ["b2b", "b2g"])),
    _rule("company_size_target", "B2C does not target company sizes",
          ("customer_type", "not_in", _B2B_SEGMENTS)),
    _rule("target_industries_b2b", "B2C does not target specific industries",
          ("customer_type", "not_in", _B2B_SEGMENTS)),
    _rule("company_revenue_target", "B2C does not target company revenue ranges",
          ("customer_type", "not_in", _B2B_SEGMENTS)),
    _rule("decision_maker", "B2C does not have business decision makers",
          ("customer_type", "not_in", _B2B_SEGMENTS)),
    _rule("business_problem", "B2C does not focus on business problems",
          ("customer_type", "not_in", _B2B_SEGMENTS)),
    _rule("current_solution", "B2C does not analyze current business solutions",
          ("customer_type", "not_in", _B2B_SEGMENTS)),
    # revenue
    _rule("billing_frequency", "One-time revenue does not have billing frequency", _ONE_TIME),
    _rule("churn_rate", "One-time revenue does not have churn", _ONE_TIME),
    _rule("expansion_revenue", "One-time revenue does not have expansion", _ONE_TIME),
    _rule("nrr", "Net Revenue Retention only applies to recurring", _ONE_TIME),
    # operations
    _rule("cofounder_skills", "Solo founders do not need co-founder skills",
          ("need_cofounder", "equals", "solo")),
    _rule("hiring_priorities", "Solo operators do not have hiring priorities",
          ("team_size_year1", "equals", "just_me")),
    _rule("employment_model", "Solo operators do not choose employment models",
          ("team_size_year1", "equals", "just_me")),
    _rule("manufacturing_model", "Service/SaaS businesses do not have manufacturing",
          ("business_model_type", "in", ["service", "saas", "agency", "consulting"])),
    # go-to-market
    _rule("sales_team", "Self-serve model does not need sales team",
          ("sales_model", "equals", "self_serve")),
    _rule("commission_structure", "No commission structure for founder-led or self-serve",
          ("sales_team", "equals", "founder"), ("sales_model", "equals", "self_serve")),
    # funding
    _rule("funding_stage", "Bootstrap does not have funding stages", _BOOTSTRAP),
    _rule("capital_needed", "Bootstrap does not need external capital", _BOOTSTRAP),
    _rule("funds_allocation", "Bootstrap does not allocate raised funds", _BOOTSTRAP),
    _rule("equity_dilution", "Bootstrap does not dilute equity", _BOOTSTRAP),
    _rule("target_valuation", "Bootstrap does not need valuation", _BOOTSTRAP),
    _rule("investor_types", "Bootstrap does not target investors", _BOOTSTRAP),
    _rule("investor_connections", "Bootstrap does not need investor connections", _BOOTSTRAP),
    _rule("investor_conversations", "Bootstrap does not have investor conversations", _BOOTSTRAP),
)


def default_skip_rules() -> SkipRuleBook:
    return SkipRuleBook.from_payload(DEFAULT_SKIP_RULES)
