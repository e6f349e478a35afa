from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Mapping, Sequence

import pytest

from bizflow.core.config import DATA_DIR, Settings
from bizflow.flow.catalog import QuestionCatalog
from bizflow.flow.navigation import QuestionFlow
from bizflow.services.agents import AgentRegistry
from bizflow.services.completion import CompletionResult, ToolCallRequest
from bizflow.services.skills import DEFAULT_SKILL_PARAMETERS, SkillRegistry


class StubCompletion:
    """Scripted stand-in for CompletionService.

    ``responses`` is either a list consumed in call order or a callable that
    receives the recorded call and returns a result. Items may be strings,
    CompletionResult objects or exceptions to raise.
    """

    def __init__(
        self,
        responses: Sequence[Any] | Callable[[dict[str, Any]], Any] | None = None,
        *,
        default: str = "ok",
        json_payload: Mapping[str, Any] | Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self._handler = responses if callable(responses) else None
        self._queue: deque[Any] = deque([] if callable(responses) or responses is None else responses)
        self._default = default
        self._json_payload = json_payload
        self._delay = delay
        self.calls: list[dict[str, Any]] = []
        self.json_calls: list[dict[str, Any]] = []

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[Any],
        *,
        tools: Sequence[Mapping[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> CompletionResult:
        call = {
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": list(tools) if tools else None,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "model": model,
        }
        self.calls.append(call)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._handler is not None:
            item = self._handler(call)
        elif self._queue:
            item = self._queue.popleft()
        else:
            item = self._default
        if isinstance(item, Exception):
            raise item
        if isinstance(item, CompletionResult):
            return item
        return CompletionResult(text=str(item))

    async def complete_json(self, system_prompt: str, prompt: str, **kwargs: Any) -> dict[str, Any]:
        self.json_calls.append({"system_prompt": system_prompt, "prompt": prompt, **kwargs})
        if isinstance(self._json_payload, Exception):
            raise self._json_payload
        return dict(self._json_payload or {})


class EchoSkill:
    def __init__(self, skill_id: str, description: str = "Echo skill") -> None:
        self.id = skill_id
        self.name = skill_id.replace("_", " ").title()
        self.description = description
        self.parameters = DEFAULT_SKILL_PARAMETERS
        self.received: list[Mapping[str, Any]] = []

    async def execute(self, params: Mapping[str, Any]) -> Any:
        self.received.append(params)
        return {"skill": self.id, "echo": dict(params)}


class FailingSkill(EchoSkill):
    async def execute(self, params: Mapping[str, Any]) -> Any:
        raise ValueError("calculation blew up")


def tool_call(name: str, arguments: Mapping[str, Any] | None = None, call_id: str = "call_1") -> CompletionResult:
    return CompletionResult(text="", tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=dict(arguments or {}))])


TEST_AGENTS: list[dict[str, Any]] = [
    {
        "id": "business_planner_lead",
        "name": "Business Planner Lead",
        "description": "Coordinates planning",
        "system_prompt": "You are the lead planner.",
        "skills": ["market_sizing_calculator"],
        "temperature": 0.4,
    },
    {
        "id": "context_collector",
        "name": "Context Collector",
        "system_prompt": "You collect context.",
    },
    {
        "id": "customer_profiler",
        "name": "Customer Profiler",
        "system_prompt": "You profile customers.",
    },
    {
        "id": "market_analyst",
        "name": "Market Analyst",
        "system_prompt": "You analyse markets.",
        "skills": ["market_sizing_calculator", "competitor_analysis"],
    },
]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        execution={"call_timeout_seconds": 2.0, "retry_attempts": 1, "max_concurrency": 5},
        translation={"api_key": None},
    )


@pytest.fixture
def agent_registry() -> AgentRegistry:
    return AgentRegistry.from_payload(TEST_AGENTS)


@pytest.fixture
def echo_skill() -> EchoSkill:
    return EchoSkill("market_sizing_calculator", "Calculate TAM, SAM and SOM")


@pytest.fixture
def skill_registry(echo_skill: EchoSkill) -> SkillRegistry:
    return SkillRegistry([echo_skill, FailingSkill("competitor_analysis")])


@pytest.fixture(scope="session")
def catalog() -> QuestionCatalog:
    return QuestionCatalog.from_file(DATA_DIR / "questionnaire.json")


@pytest.fixture
def flow(catalog: QuestionCatalog) -> QuestionFlow:
    return QuestionFlow(catalog=catalog)
