"""Intent resolution and execution planning.

An intent comes either from a fixed fast path (suggestion requests, first-phase
onboarding, a known next question) or from a JSON completion call. Intents the
model produces are then widened by the minimum-agent policy before planning.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Sequence
from uuid import uuid4

from pydantic import ValidationError

from ..core.config import Settings
from ..core.errors import BizflowError, OrchestratorError
from ..core.logging import get_logger
from ..rules.engine import RuleTriggerResult
from ..schemas.orchestrator import ExecutionMode, ExecutionPlan, Intent, Task
from ..services.agents import AgentRegistry
from ..services.completion import CompletionService
from ..services.skills import SkillRegistry

logger = get_logger(name=__name__)

DEFAULT_INTENT_AGENTS: tuple[str, str] = ("business_planner_lead", "context_collector")
DEFAULT_SPECIALIST = "market_analyst"
DEFAULT_PHASE_NUMBER = 2

PHASE_SPECIALISTS: dict[int, str] = {
    1: "context_collector",
    2: "customer_profiler",
    3: "market_analyst",
    4: "financial_modeler",
    5: "revenue_architect",
    6: "gtm_strategist",
    7: "funding_strategist",
}

SUGGESTION_GOAL = "Generate 3-4 short, specific brainstorming ideas for the user question"

_PHASE_PATTERN = re.compile(r"Phase (\d+)")

_INTENT_SYSTEM_PROMPT = """You route business planning requests to specialist agents.

Decide what the user wants to accomplish, which agents and skills are needed and whether
the agents can run independently (parallel) or need each other's output (sequential).
Select at least two agents and ideally three. Prefer parallel execution unless an agent
needs another agent's output.

Available agents:
{agents}

Available skills:
{skills}

Respond with a JSON object:
{{
  "goal": "what the user wants",
  "agents": ["agent_id", "..."],
  "skills": ["skill_id"],
  "execution_type": "parallel" or "sequential",
  "reasoning": "why these agents and skills",
  "context_requirements": ["context the agents need"]
}}"""


def _numeric_phase(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def phase_number(value: Any) -> int:
    """Phase number from an int or a ``"Phase N"`` label, defaulting to 2."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_PHASE_NUMBER
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # fractional phases are never in the specialist table
        return int(value) if value.is_integer() else 0
    if isinstance(value, str):
        match = _PHASE_PATTERN.search(value)
        if match:
            return int(match.group(1))
    return DEFAULT_PHASE_NUMBER


def is_first_phase(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value == 1
    label = str(value or "")
    return "Phase 1" in label or label == "1"


def second_agent_for(context: Mapping[str, Any]) -> str:
    phase = _numeric_phase(context.get("currentPhase"))
    if phase and phase < 3:
        return "context_collector"
    return "customer_profiler"


def apply_minimum_agent_policy(intent: Intent, context: Mapping[str, Any] | None = None) -> Intent:
    """Widen an intent to at least two, and where possible three, agents."""
    context = context or {}
    agents = list(intent.agents)
    reasoning = intent.reasoning

    if not agents:
        logger.warning("intent_without_agents", defaults=list(DEFAULT_INTENT_AGENTS))
        agents = list(DEFAULT_INTENT_AGENTS)
        reasoning = "Default agents selected for comprehensive analysis"

    if len(agents) < 2:
        second = second_agent_for(context)
        if second not in agents:
            agents.append(second)
            logger.info("intent_agent_added", agent=second, position="second")

    if len(agents) < 3:
        phase = phase_number(context.get("currentPhase"))
        specialist = PHASE_SPECIALISTS.get(phase, DEFAULT_SPECIALIST)
        if specialist not in agents:
            agents.append(specialist)
            logger.info("intent_agent_added", agent=specialist, position="specialist", phase=phase)

    return intent.model_copy(update={"agents": agents, "reasoning": reasoning})


def suggested_intent(result: RuleTriggerResult, goal: str = "Run rule-triggered analysis") -> Intent | None:
    """Intent covering the agents and skills queued by the trigger engine, if any."""
    agents: list[str] = []
    for invocation in result.agents_to_trigger:
        if invocation.agent_id not in agents:
            agents.append(invocation.agent_id)
    skills: list[str] = []
    for invocation in result.skills_to_execute:
        if invocation.skill_id not in skills:
            skills.append(invocation.skill_id)
    if not agents and not skills:
        return None
    return Intent(
        goal=goal,
        agents=agents,
        skills=skills,
        execution_type=ExecutionMode.PARALLEL,
        reasoning="Agents and skills queued by answer trigger rules",
        context_requirements=sorted(result.auto_populated),
    )


def trigger_prompts(result: RuleTriggerResult) -> dict[str, str]:
    """Interpolated rule prompts per agent, joined when one agent is queued twice."""
    prompts: dict[str, list[str]] = {}
    for invocation in result.agents_to_trigger:
        if invocation.prompt:
            prompts.setdefault(invocation.agent_id, []).append(invocation.prompt)
    return {agent_id: "\n\n".join(items) for agent_id, items in prompts.items()}


class IntentPlanner:
    """Resolves requests into intents and intents into execution plans."""

    def __init__(
        self,
        settings: Settings,
        *,
        completion: CompletionService,
        agents: AgentRegistry,
        skills: SkillRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._completion = completion
        self._agents = agents
        self._skills = skills

    async def resolve_intent(self, message: str, context: Mapping[str, Any] | None = None) -> Intent:
        context = context or {}
        fast_path = self.fast_path_intent(context)
        if fast_path is not None:
            logger.info("intent_fast_path", goal=fast_path.goal, agents=fast_path.agents)
            return fast_path
        return await self.parse_intent(message, context)

    def fast_path_intent(self, context: Mapping[str, Any]) -> Intent | None:
        if context.get("requestType") == "suggestion":
            return Intent(
                goal=SUGGESTION_GOAL,
                agents=["business_planner_lead"],
                execution_type=ExecutionMode.SEQUENTIAL,
                reasoning="Explicit suggestion request",
            )
        if is_first_phase(context.get("currentPhase")):
            return Intent(
                goal="Collect user information",
                agents=["context_collector"],
                execution_type=ExecutionMode.PARALLEL,
                reasoning="First phase onboarding",
            )
        if context.get("nextQuestion"):
            return Intent(
                goal="Process answer and transition to next question",
                agents=["business_planner_lead"],
                execution_type=ExecutionMode.PARALLEL,
                reasoning="Next question already known",
            )
        return None

    async def parse_intent(self, message: str, context: Mapping[str, Any]) -> Intent:
        planner = self._settings.planner_llm
        prompt = f'User request: "{message}"\n\n'
        if context:
            prompt += f"Current context: {json.dumps(dict(context), indent=2, default=str)}\n\n"
        prompt += "Analyze this request and determine which agents and skills are needed."

        try:
            payload = await self._completion.complete_json(
                self._system_prompt(),
                prompt,
                temperature=planner.temperature,
                max_tokens=planner.max_output_tokens,
                model=planner.model,
            )
            intent = self._validate_intent(payload)
        except (BizflowError, ValidationError, ValueError) as exc:
            logger.error("intent_parse_failed", error=str(exc))
            raise OrchestratorError("Failed to parse intent", "INTENT_PARSE_FAILED", exc) from exc

        intent = apply_minimum_agent_policy(intent, context)
        logger.info("intent_resolved", agents=intent.agents, execution_type=intent.execution_type.value)
        return intent

    def create_plan(self, intent: Intent, descriptions: Mapping[str, str] | None = None) -> ExecutionPlan:
        descriptions = descriptions or {}
        tasks: list[Task] = []
        for index, agent_id in enumerate(intent.agents):
            agent = self._agents.get_agent(agent_id)
            dependencies = [tasks[-1].id] if intent.execution_type is ExecutionMode.SEQUENTIAL and tasks else []
            tasks.append(
                Task(
                    id=str(uuid4()),
                    agent_id=agent_id,
                    agent_name=agent.name if agent is not None else agent_id,
                    description=descriptions.get(agent_id) or f"Execute {agent_id} agent",
                    skills=list(intent.skills),
                    dependencies=dependencies,
                    priority=index,
                )
            )
        return ExecutionPlan(
            tasks=tasks,
            execution_type=intent.execution_type,
            estimated_duration_seconds=len(tasks) * self._settings.execution.per_task_estimate_seconds,
        )

    def _system_prompt(self) -> str:
        agents = "\n".join(
            f"- {agent.id}: {agent.description or agent.name}" for agent in self._agents.all_agents()
        )
        skills = "(none)"
        if self._skills is not None and self._skills.skill_count():
            skills = "\n".join(f"- {skill.id}: {skill.description}" for skill in self._skills.all_skills())
        return _INTENT_SYSTEM_PROMPT.format(agents=agents or "(none)", skills=skills)

    @staticmethod
    def _validate_intent(payload: Mapping[str, Any]) -> Intent:
        if not payload.get("goal") or payload.get("agents") is None or not payload.get("execution_type"):
            raise ValueError("Invalid intent structure")
        data = dict(payload)
        data["execution_type"] = str(data["execution_type"]).strip().lower()
        data["agents"] = _string_list(data.get("agents"))
        data["skills"] = _string_list(data.get("skills"))
        data["context_requirements"] = _string_list(data.get("context_requirements"))
        data["reasoning"] = str(data.get("reasoning") or "")
        return Intent.model_validate(data)


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if item is not None and str(item)]
    raise ValueError(f"Expected a list, got {type(value).__name__}")
