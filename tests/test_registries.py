from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import EchoSkill, StubCompletion

from bizflow.core.config import DATA_DIR
from bizflow.core.errors import ConfigurationError, DeadlineExceeded, SkillExecutionError
from bizflow.services.agents import AgentRegistry
from bizflow.services.skills import PromptSkill, SkillRegistry, tool_definition

SHIPPED_SKILLS = [
    "market_sizing_calculator",
    "financial_modeling",
    "competitor_analysis",
    "compliance_checker",
    "branded_document_generator",
]


class _SlowSkill(EchoSkill):
    async def execute(self, params):
        await asyncio.sleep(0.5)
        return "late"


def test_shipped_agents_load_and_cover_planner_agents() -> None:
    registry = AgentRegistry.from_file(DATA_DIR / "agents.yaml")

    assert registry.agent_count() == 17
    ok, missing = registry.validate_agents(
        ["business_planner_lead", "context_collector", "customer_profiler", "market_analyst", "financial_modeler",
         "revenue_architect", "gtm_strategist", "funding_strategist"]
    )
    assert ok, missing
    lead = registry.get_agent("business_planner_lead")
    assert lead is not None
    assert "market_sizing_calculator" in lead.skills
    assert [agent.id for agent in registry.agents_by_skill("financial_modeling")][0] == "business_planner_lead"


def test_shipped_agent_skills_exist_in_skill_catalog() -> None:
    agents = AgentRegistry.from_file(DATA_DIR / "agents.yaml")
    skills = SkillRegistry.from_file(DATA_DIR / "skills.yaml", StubCompletion())

    assert [skill.id for skill in skills.all_skills()] == SHIPPED_SKILLS
    for agent in agents.all_agents():
        ok, missing = skills.validate_skills(agent.skills)
        assert ok, (agent.id, missing)


def test_agent_lookup_helpers(agent_registry: AgentRegistry) -> None:
    assert [agent.id for agent in agent_registry.get_agents(["market_analyst", "ghost"])] == ["market_analyst"]
    assert agent_registry.has_agent("context_collector")
    assert [agent.id for agent in agent_registry.search("profile")] == ["customer_profiler"]
    assert [agent.id for agent in agent_registry.search("competitor")] == ["market_analyst"]
    assert agent_registry.validate_agents(["ghost"]) == (False, ["ghost"])


def test_invalid_agent_entries_are_skipped() -> None:
    registry = AgentRegistry.from_payload(
        [
            {"id": "ok", "name": "Ok", "system_prompt": "p"},
            {"id": "nameless", "system_prompt": "p"},
            {"id": "hot", "name": "Hot", "system_prompt": "p", "temperature": 9},
            "not a mapping",
        ]
    )
    assert [agent.id for agent in registry.all_agents()] == ["ok"]


def test_agent_file_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        AgentRegistry.from_file(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("- id: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        AgentRegistry.from_file(broken)

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("just text", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        AgentRegistry.from_file(scalar)


def test_tool_definitions_use_function_format(skill_registry: SkillRegistry) -> None:
    definitions = skill_registry.get_tool_definitions(["market_sizing_calculator", "unknown_skill"])

    assert len(definitions) == 1
    function = definitions[0]["function"]
    assert definitions[0]["type"] == "function"
    assert function["name"] == "market_sizing_calculator"
    assert function["parameters"]["required"] == ["query"]


@pytest.mark.asyncio
async def test_execute_unknown_skill_raises(skill_registry: SkillRegistry) -> None:
    with pytest.raises(SkillExecutionError, match="Skill not found: nope"):
        await skill_registry.execute("nope", {})


@pytest.mark.asyncio
async def test_execute_wraps_skill_failures(skill_registry: SkillRegistry) -> None:
    with pytest.raises(SkillExecutionError) as excinfo:
        await skill_registry.execute("competitor_analysis", {})

    assert str(excinfo.value) == "Failed to execute skill: competitor_analysis"
    assert isinstance(excinfo.value.cause, ValueError)


@pytest.mark.asyncio
async def test_execute_enforces_skill_deadline() -> None:
    registry = SkillRegistry([_SlowSkill("slow")], timeout_seconds=0.05)

    with pytest.raises(SkillExecutionError) as excinfo:
        await registry.execute("slow", {})

    assert isinstance(excinfo.value.cause, DeadlineExceeded)


@pytest.mark.asyncio
async def test_prompt_skill_runs_instructions_through_completion() -> None:
    completion = StubCompletion(["TAM: 10B", ""])
    skill = PromptSkill(
        id="market_sizing_calculator",
        name="Market Sizing",
        description="Size markets",
        instructions="You size markets.",
        completer=completion,
    )

    assert await skill.execute({"industry": "SaaS"}) == "TAM: 10B"
    assert await skill.execute({}) == "No response generated."
    call = completion.calls[0]
    assert call["system_prompt"] == "You size markets."
    assert call["temperature"] == 0.1
    assert call["messages"][0].content.endswith("Execute the task based on your instructions.")
    assert '"industry": "SaaS"' in call["messages"][0].content
    assert tool_definition(skill)["function"]["parameters"]["required"] == ["query"]


def test_skill_lookup_helpers(skill_registry: SkillRegistry) -> None:
    assert skill_registry.has_skill("competitor_analysis")
    assert not skill_registry.has_skill("nope")
    skill = skill_registry.get_skill("market_sizing_calculator")
    assert skill is not None and skill.id == "market_sizing_calculator"
    assert skill_registry.validate_skills(["competitor_analysis", "nope"]) == (False, ["nope"])
