from __future__ import annotations

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage, ToolMessage

from conftest import EchoSkill, StubCompletion, tool_call

from bizflow.core.config import Settings
from bizflow.orchestration.executor import SKILL_NOT_AVAILABLE, TaskExecutor, build_user_content, target_language
from bizflow.schemas.orchestrator import ExecutionMode, ExecutionPlan, Task
from bizflow.services.agents import AgentRegistry
from bizflow.services.completion import CompletionResult, ToolCallRequest
from bizflow.services.skills import SkillRegistry


def _task(task_id: str, agent_id: str, **kwargs) -> Task:
    return Task(
        id=task_id,
        agent_id=agent_id,
        agent_name=agent_id.replace("_", " ").title(),
        description=f"Execute {agent_id} agent",
        **kwargs,
    )


def _executor(settings, agent_registry, skill_registry, completion) -> TaskExecutor:
    return TaskExecutor(settings, completion=completion, agents=agent_registry, skills=skill_registry)


class _DelayedCompletion(StubCompletion):
    """Replies with the system prompt after an agent-specific delay."""

    def __init__(self, delays: dict[str, float]) -> None:
        super().__init__()
        self._delays = delays
        self.finished: list[str] = []

    async def complete(self, system_prompt, messages, **kwargs) -> CompletionResult:
        await asyncio.sleep(self._delays.get(system_prompt, 0.0))
        self.finished.append(system_prompt)
        return CompletionResult(text=system_prompt)


@pytest.mark.asyncio
async def test_failing_task_does_not_abort_siblings(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry
) -> None:
    def respond(call):
        if call["system_prompt"] == "You collect context.":
            raise RuntimeError("model crashed")
        return f"done by {call['system_prompt']}"

    executor = _executor(settings, agent_registry, skill_registry, StubCompletion(respond))
    plan = ExecutionPlan(
        tasks=[_task("t1", "business_planner_lead"), _task("t2", "context_collector"), _task("t3", "customer_profiler")],
        execution_type=ExecutionMode.PARALLEL,
    )

    outputs = await executor.execute(plan, {"currentPhase": 3})

    assert [output.task_id for output in outputs] == ["t1", "t2", "t3"]
    assert [output.success for output in outputs] == [True, False, True]
    assert outputs[1].error == "model crashed"
    assert outputs[1].output == ""
    assert outputs[0].output == "done by You are the lead planner."
    assert outputs[2].output == "done by You profile customers."


@pytest.mark.asyncio
async def test_parallel_outputs_keep_plan_order(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry
) -> None:
    completion = _DelayedCompletion({"You are the lead planner.": 0.1, "You collect context.": 0.05})
    executor = _executor(settings, agent_registry, skill_registry, completion)
    tasks = [_task("t1", "business_planner_lead"), _task("t2", "context_collector"), _task("t3", "customer_profiler")]

    outputs = await executor.execute_parallel(tasks, {})

    assert completion.finished[0] == "You profile customers."
    assert [output.agent_id for output in outputs] == ["business_planner_lead", "context_collector", "customer_profiler"]


@pytest.mark.asyncio
async def test_sequential_tasks_see_earlier_outputs(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry
) -> None:
    completion = StubCompletion(["first insight", "second insight"])
    executor = _executor(settings, agent_registry, skill_registry, completion)
    plan = ExecutionPlan(
        tasks=[_task("t1", "context_collector"), _task("t2", "customer_profiler", dependencies=["t1"])],
        execution_type=ExecutionMode.SEQUENTIAL,
    )

    outputs = await executor.execute(plan, {"user_name": "Asha"})

    assert [output.output for output in outputs] == ["first insight", "second insight"]
    first_prompt = completion.calls[0]["messages"][0].content
    second_prompt = completion.calls[1]["messages"][0].content
    assert "context_collector_output" not in first_prompt
    assert '"context_collector_output": "first insight"' in second_prompt
    assert '"user_name": "Asha"' in second_prompt


@pytest.mark.asyncio
async def test_unknown_agent_yields_failed_output(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry
) -> None:
    completion = StubCompletion()
    executor = _executor(settings, agent_registry, skill_registry, completion)

    output = await executor.execute_task(_task("t9", "ghost_agent"))

    assert output.success is False
    assert output.error == "Agent not found: ghost_agent"
    assert completion.calls == []


@pytest.mark.asyncio
async def test_agent_call_uses_agent_parameters(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry
) -> None:
    completion = StubCompletion(["plan ready"])
    executor = _executor(settings, agent_registry, skill_registry, completion)

    output = await executor.execute_task(_task("t1", "business_planner_lead"), {})

    [call] = completion.calls
    assert call["system_prompt"] == "You are the lead planner."
    assert call["temperature"] == 0.4
    assert call["max_tokens"] == settings.ollama.max_tokens
    assert [tool["function"]["name"] for tool in call["tools"]] == ["market_sizing_calculator"]
    assert output.success is True
    assert output.skills_used == []
    assert output.execution_time_ms >= 0


@pytest.mark.asyncio
async def test_agents_without_registered_skills_get_no_tools(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry
) -> None:
    completion = StubCompletion(["hello"])
    executor = _executor(settings, agent_registry, skill_registry, completion)

    await executor.execute_task(_task("t1", "context_collector"), {})

    assert completion.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_tool_loop_handles_allowed_rejected_and_failing_skills(
    settings: Settings, agent_registry: AgentRegistry, skill_registry: SkillRegistry, echo_skill: EchoSkill
) -> None:
    requested = CompletionResult(
        text="",
        tool_calls=[
            ToolCallRequest(id="c1", name="market_sizing_calculator", arguments={"industry": "SaaS"}),
            ToolCallRequest(id="c2", name="competitor_analysis", arguments={"competitors": ["Acme"]}),
            ToolCallRequest(id="c3", name="compliance_checker", arguments={}),
        ],
    )
    completion = StubCompletion([requested, "The market is large."])
    executor = _executor(settings, agent_registry, skill_registry, completion)

    output = await executor.execute_task(_task("t1", "market_analyst"), {})

    assert output.success is True
    assert output.output == "The market is large."
    assert echo_skill.received == [{"industry": "SaaS"}]
    assert [record.name for record in output.tool_calls] == [
        "market_sizing_calculator",
        "competitor_analysis",
        "compliance_checker",
    ]
    assert output.tool_calls[0].result == {"skill": "market_sizing_calculator", "echo": {"industry": "SaaS"}}
    assert output.tool_calls[1].error == "Failed to execute skill: competitor_analysis"
    assert output.tool_calls[2].error == SKILL_NOT_AVAILABLE
    assert output.skills_used == ["market_sizing_calculator", "competitor_analysis"]

    first, final = completion.calls
    assert len(first["tools"]) == 2
    assert final["tools"] is None
    replayed = final["messages"]
    assert isinstance(replayed[1], AIMessage)
    tool_messages = [message for message in replayed if isinstance(message, ToolMessage)]
    assert [message.tool_call_id for message in tool_messages] == ["c1", "c2", "c3"]
    assert json.loads(tool_messages[2].content) == {"error": SKILL_NOT_AVAILABLE}


@pytest.mark.asyncio
async def test_unregistered_skill_in_agent_allow_list_reports_error(
    settings: Settings, agent_registry: AgentRegistry, echo_skill: EchoSkill
) -> None:
    registry = SkillRegistry([echo_skill])
    completion = StubCompletion([tool_call("competitor_analysis", {"competitors": []}), "done"])
    executor = _executor(settings, agent_registry, registry, completion)

    output = await executor.execute_task(_task("t1", "market_analyst"), {})

    assert output.success is True
    assert output.tool_calls[0].error == "Skill not found: competitor_analysis"


@pytest.mark.asyncio
async def test_slow_completion_exceeds_deadline(agent_registry: AgentRegistry, skill_registry: SkillRegistry) -> None:
    settings = Settings(environment="test", execution={"call_timeout_seconds": 0.05, "retry_attempts": 1})
    executor = _executor(settings, agent_registry, skill_registry, StubCompletion(delay=0.5))

    output = await executor.execute_task(_task("t1", "context_collector"), {})

    assert output.success is False
    assert output.error == "agent:context_collector exceeded deadline of 0.05s"


def test_user_content_carries_language_instructions() -> None:
    task = _task("t1", "market_analyst")
    english = build_user_content(task, {"language": "en-US"})
    assert english.startswith("Execute market_analyst agent\n\nContext: ")
    assert "LANGUAGE REQUIREMENT" not in english

    telugu = build_user_content(task, {"allAnswers": {"language": "te-IN"}})
    assert telugu.startswith("LANGUAGE REQUIREMENT: the user has selected Telugu (te-IN).")
    assert telugu.endswith("REMINDER: your response must be entirely in Telugu.")


def test_target_language_prefers_explicit_language() -> None:
    assert target_language({"language": "hi-IN", "allAnswers": {"language": "te-IN"}}) == "hi-IN"
    assert target_language({"allAnswers": {"language": "ta-IN"}}) == "ta-IN"
    assert target_language({}) is None
