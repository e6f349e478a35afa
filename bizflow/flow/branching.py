"""Branch points: which follow-up questions an answer activates.

Branch tables are bookkeeping for explanations and UI hints only. Whether a
question is actually asked is decided by the skip rules.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import ConfigurationError


class BranchPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., min_length=1)
    branches: dict[str, tuple[str, ...]]
    description: str = ""


class BranchTable:
    def __init__(self, points: Iterable[BranchPoint]) -> None:
        index: dict[str, BranchPoint] = {}
        for point in points:
            if point.question_id in index:
                raise ConfigurationError(f"Duplicate branch point: {point.question_id}")
            index[point.question_id] = point
        self._index = MappingProxyType(index)

    @classmethod
    def from_payload(cls, payload: Iterable[Mapping[str, Any]]) -> "BranchTable":
        return cls(BranchPoint.model_validate(item) for item in payload)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._index

    def point(self, question_id: str) -> BranchPoint | None:
        return self._index.get(question_id)

    def ids(self) -> list[str]:
        return list(self._index)

    def branch_questions(self, question_id: str, answer: Any) -> list[str]:
        point = self._index.get(question_id)
        if point is None or not isinstance(answer, str):
            return []
        return list(point.branches.get(answer, ()))

    def active_branches(self, answers: Mapping[str, Any]) -> dict[str, Any]:
        return {point_id: answers[point_id] for point_id in self._index if answers.get(point_id)}


DEFAULT_BRANCH_POINTS: tuple[dict[str, Any], ...] = (
    {
        "question_id": "business_path",
        "description": "Determines whether to ask new business or existing business questions",
        "branches": {
            "new": ["idea_status", "business_idea_detail", "target_industries", "problem_to_solve"],
            "existing": [
                "existing_name",
                "existing_website",
                "existing_industry",
                "business_start_date",
                "current_revenue",
                "legal_entity",
                "current_products",
            ],
            "idea_only": ["idea_status", "target_industries"],
            "informal": ["existing_name", "idea_status"],
        },
    },
    {
        "question_id": "customer_type",
        "description": "Determines whether to ask B2C demographics or B2B firmographics",
        "branches": {
            "b2c": ["target_age", "target_gender", "target_income", "target_education", "customer_interests"],
            "b2b": [
                "company_size_target",
                "target_industries_b2b",
                "company_revenue_target",
                "decision_maker",
                "business_problem",
                "current_solution",
            ],
            "b2b2c": ["target_age", "target_gender", "company_size_target", "target_industries_b2b"],
            "b2g": ["company_size_target", "target_industries_b2b", "decision_maker"],
            "hybrid": ["target_age", "target_income", "company_size_target", "target_industries_b2b"],
        },
    },
    {
        "question_id": "external_funding",
        "description": "Determines whether to ask funding-related questions",
        "branches": {
            "yes": [
                "funding_stage",
                "capital_needed",
                "funds_allocation",
                "equity_dilution",
                "target_valuation",
                "investor_types",
                "investor_connections",
                "investor_conversations",
            ],
            "bootstrap": [],
            "later": ["capital_needed", "funds_allocation"],
        },
    },
)


def default_branch_table() -> BranchTable:
    return BranchTable.from_payload(DEFAULT_BRANCH_POINTS)
