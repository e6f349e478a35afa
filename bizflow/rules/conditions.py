from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _BaseCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)


class Exists(_BaseCondition):
    operator: Literal["exists"] = "exists"

    def holds(self, answers: Mapping[str, Any]) -> bool:
        value = answers.get(self.field)
        return value is not None and value != ""


class Equals(_BaseCondition):
    operator: Literal["equals"] = "equals"
    value: Any

    def holds(self, answers: Mapping[str, Any]) -> bool:
        return self.field in answers and answers[self.field] == self.value


class Contains(_BaseCondition):
    operator: Literal["contains"] = "contains"
    value: str

    def holds(self, answers: Mapping[str, Any]) -> bool:
        actual = answers.get(self.field)
        return isinstance(actual, str) and self.value in actual


Condition = Annotated[Union[Exists, Equals, Contains], Field(discriminator="operator")]

_CONDITION_ADAPTER: TypeAdapter[Condition] = TypeAdapter(Condition)


def parse_condition(payload: Mapping[str, Any]) -> Condition:
    return _CONDITION_ADAPTER.validate_python(dict(payload))


def all_hold(conditions: tuple[Condition, ...] | list[Condition], answers: Mapping[str, Any]) -> bool:
    return all(condition.holds(answers) for condition in conditions)
