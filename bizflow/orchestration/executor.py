from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Mapping, Sequence

from langchain_core.messages import BaseMessage

from ..core.config import Settings
from ..core.errors import AgentExecutionError, DeadlineExceeded, SkillExecutionError
from ..core.logging import get_logger
from ..core.metrics import TOOL_CALLS_TOTAL, record_agent_execution
from ..schemas.orchestrator import AgentOutput, ExecutionMode, ExecutionPlan, Task, ToolCallRecord
from ..services.agents import AgentDefinition, AgentRegistry
from ..services.completion import (
    CompletionResult,
    Completer,
    ToolCallRequest,
    assistant_tool_message,
    tool_result_message,
    user_message,
)
from ..services.skills import SkillRegistry
from ..services.translation import language_name

logger = get_logger(name=__name__)

SKILL_NOT_AVAILABLE = "Skill not available"


def target_language(context: Mapping[str, Any]) -> str | None:
    language = context.get("language")
    if not language:
        answers = context.get("allAnswers")
        if isinstance(answers, Mapping):
            language = answers.get("language")
    return str(language) if language else None


def language_preamble(locale: str) -> str:
    name = language_name(locale)
    return (
        f"LANGUAGE REQUIREMENT: the user has selected {name} ({locale}).\n"
        f"Respond entirely in simple, everyday {name}. Do not answer in English sentences; "
        "English words are fine for business terms."
    )


def build_user_content(task: Task, context: Mapping[str, Any]) -> str:
    content = f"{task.description}\n\nContext: {json.dumps(dict(context), indent=2, default=str)}"
    locale = target_language(context)
    if locale and language_name(locale) != "English":
        name = language_name(locale)
        content = (
            f"{language_preamble(locale)}\n\n{content}\n\n"
            f"REMINDER: your response must be entirely in {name}."
        )
    return content


class TaskExecutor:
    """Runs plan tasks against agents, with a bounded tool-call loop per task."""

    def __init__(
        self,
        settings: Settings,
        *,
        completion: Completer,
        agents: AgentRegistry,
        skills: SkillRegistry,
    ) -> None:
        self._settings = settings
        self._completion = completion
        self._agents = agents
        self._skills = skills
        self._semaphore = asyncio.Semaphore(settings.execution.max_concurrency)

    async def execute(self, plan: ExecutionPlan, context: Mapping[str, Any] | None = None) -> list[AgentOutput]:
        context = dict(context or {})
        if plan.execution_type is ExecutionMode.SEQUENTIAL:
            return await self.execute_sequential(plan.tasks, context)
        return await self.execute_parallel(plan.tasks, context)

    async def execute_parallel(self, tasks: Sequence[Task], context: Mapping[str, Any]) -> list[AgentOutput]:
        logger.info("executing_parallel", count=len(tasks))

        async def _bounded(task: Task) -> AgentOutput:
            async with self._semaphore:
                return await self.execute_task(task, context)

        # gather keeps input order regardless of completion order
        return list(await asyncio.gather(*(_bounded(task) for task in tasks)))

    async def execute_sequential(self, tasks: Sequence[Task], context: Mapping[str, Any]) -> list[AgentOutput]:
        logger.info("executing_sequential", count=len(tasks))
        outputs: list[AgentOutput] = []
        accumulated = dict(context)
        for task in tasks:
            output = await self.execute_task(task, accumulated)
            outputs.append(output)
            accumulated = {**accumulated, f"{task.agent_id}_output": output.output}
        return outputs

    async def execute_task(self, task: Task, context: Mapping[str, Any] | None = None) -> AgentOutput:
        context = context or {}
        started = time.perf_counter()
        logger.info("task_started", task_id=task.id, agent_id=task.agent_id)
        try:
            agent = self._agents.get_agent(task.agent_id)
            if agent is None:
                raise AgentExecutionError(f"Agent not found: {task.agent_id}", task.agent_id)
            text, records = await self._run_agent(agent, task, context)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            record_agent_execution(task.agent_id, success=False, duration_seconds=elapsed)
            logger.warning(
                "task_failed",
                task_id=task.id,
                agent_id=task.agent_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return AgentOutput(
                task_id=task.id,
                agent_id=task.agent_id,
                agent_name=task.agent_name,
                output="",
                execution_time_ms=round(elapsed * 1000, 2),
                success=False,
                error=str(exc) or type(exc).__name__,
            )

        elapsed = time.perf_counter() - started
        called = {record.name for record in records}
        skills_used = [skill for skill in agent.skills if skill in called]
        record_agent_execution(task.agent_id, success=True, duration_seconds=elapsed)
        logger.info(
            "task_completed",
            task_id=task.id,
            agent_id=task.agent_id,
            duration_ms=round(elapsed * 1000, 2),
            skills_used=skills_used,
        )
        return AgentOutput(
            task_id=task.id,
            agent_id=task.agent_id,
            agent_name=task.agent_name,
            output=text,
            skills_used=skills_used,
            tool_calls=records,
            execution_time_ms=round(elapsed * 1000, 2),
            success=True,
        )

    async def _run_agent(
        self,
        agent: AgentDefinition,
        task: Task,
        context: Mapping[str, Any],
    ) -> tuple[str, list[ToolCallRecord]]:
        tools = self._skills.get_tool_definitions(list(agent.skills))
        messages: list[BaseMessage] = [user_message(build_user_content(task, context))]

        response = await self._complete(agent, messages, tools=tools or None)
        if not response.tool_calls:
            return response.text, []

        logger.info("tool_calls_requested", agent_id=agent.id, count=len(response.tool_calls))
        records, tool_messages = await self.handle_tool_calls(response.tool_calls, agent.skills)
        messages.append(assistant_tool_message(response))
        messages.extend(tool_messages)

        # one final round without tools
        final = await self._complete(agent, messages, tools=None)
        return final.text, records

    async def _complete(
        self,
        agent: AgentDefinition,
        messages: Sequence[BaseMessage],
        *,
        tools: Sequence[Mapping[str, Any]] | None,
    ) -> CompletionResult:
        timeout = self._settings.execution.call_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._completion.complete(
                    agent.system_prompt,
                    messages,
                    tools=tools,
                    temperature=agent.temperature,
                    max_tokens=self._settings.ollama.max_tokens,
                    model=agent.model,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("agent_deadline_exceeded", agent_id=agent.id, timeout=timeout)
            raise DeadlineExceeded(f"agent:{agent.id}", timeout) from exc

    async def handle_tool_calls(
        self,
        calls: Sequence[ToolCallRequest],
        allowed_skills: Sequence[str],
    ) -> tuple[list[ToolCallRecord], list[BaseMessage]]:
        """Execute requested skills in order; failures become error payloads for the model."""
        records: list[ToolCallRecord] = []
        messages: list[BaseMessage] = []
        for call in calls:
            if call.name not in allowed_skills:
                logger.warning("tool_call_rejected", skill_id=call.name)
                TOOL_CALLS_TOTAL.labels(skill=call.name, outcome="rejected").inc()
                payload: Any = {"error": SKILL_NOT_AVAILABLE}
                records.append(ToolCallRecord(id=call.id, name=call.name, arguments=call.arguments, error=SKILL_NOT_AVAILABLE))
            else:
                try:
                    result = await self._skills.execute(call.name, call.arguments)
                except SkillExecutionError as exc:
                    logger.warning("tool_call_failed", skill_id=call.name, error=str(exc))
                    payload = {"error": str(exc) or "Tool execution failed"}
                    records.append(ToolCallRecord(id=call.id, name=call.name, arguments=call.arguments, error=payload["error"]))
                else:
                    payload = result
                    records.append(ToolCallRecord(id=call.id, name=call.name, arguments=call.arguments, result=result))
            messages.append(tool_result_message(call, payload))
        return records, messages
