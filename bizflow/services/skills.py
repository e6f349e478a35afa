from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

import yaml

from ..core.errors import ConfigurationError, DeadlineExceeded, SkillExecutionError
from ..core.logging import get_logger
from ..core.metrics import TOOL_CALLS_TOTAL
from .completion import Completer, user_message

logger = get_logger(name=__name__)

DEFAULT_SKILL_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "The specific request or query for this skill"},
        "context": {"type": "object", "description": "Any relevant business context"},
    },
    "required": ["query"],
}


@runtime_checkable
class Skill(Protocol):
    id: str
    name: str
    description: str
    parameters: Mapping[str, Any]

    async def execute(self, params: Mapping[str, Any]) -> Any:
        ...


def tool_definition(skill: Skill) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": skill.id,
            "description": skill.description,
            "parameters": dict(skill.parameters),
        },
    }


class PromptSkill:
    """Skill whose behaviour is a set of instructions run through the completion service."""

    def __init__(
        self,
        *,
        id: str,
        name: str,
        description: str,
        instructions: str,
        completer: Completer,
        parameters: Mapping[str, Any] | None = None,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> None:
        self.id = id
        self.name = name
        self.description = description
        self.instructions = instructions
        self.parameters = dict(parameters or DEFAULT_SKILL_PARAMETERS)
        self._completer = completer
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def execute(self, params: Mapping[str, Any]) -> Any:
        prompt = (
            f"Parameters: {json.dumps(dict(params), indent=2, default=str)}\n\n"
            "Execute the task based on your instructions."
        )
        result = await self._completer.complete(
            self.instructions,
            [user_message(prompt)],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        return result.text or "No response generated."


class SkillRegistry:
    """Skills addressable by id and exposed to agents as callable tools."""

    def __init__(self, skills: Iterable[Skill] = (), *, timeout_seconds: float | None = None) -> None:
        self._skills: dict[str, Skill] = {}
        self._timeout = timeout_seconds
        for skill in skills:
            self.register(skill)

    @classmethod
    def from_file(
        cls,
        path: Path | str,
        completer: Completer,
        *,
        timeout_seconds: float | None = None,
    ) -> "SkillRegistry":
        path = Path(path)
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8")) or []
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Skill definitions not found at {path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Skill definitions at {path} are not valid YAML: {exc}") from exc
        if isinstance(payload, Mapping):
            payload = payload.get("skills") or []
        if not isinstance(payload, list):
            raise ConfigurationError(f"Skill definitions at {path} must be a list")

        registry = cls(timeout_seconds=timeout_seconds)
        for entry in payload:
            if not isinstance(entry, Mapping):
                logger.warning("skill_definition_invalid", reason="not a mapping")
                continue
            if not entry.get("id") or not entry.get("instructions"):
                logger.warning("skill_definition_invalid", skill_id=entry.get("id"), reason="missing required field")
                continue
            registry.register(
                PromptSkill(
                    id=str(entry["id"]),
                    name=str(entry.get("name") or entry["id"]),
                    description=str(entry.get("description") or ""),
                    instructions=str(entry["instructions"]),
                    parameters=entry.get("parameters"),
                    temperature=float(entry.get("temperature", 0.1)),
                    completer=completer,
                )
            )
        logger.info("skills_loaded", count=registry.skill_count())
        return registry

    def register(self, skill: Skill) -> None:
        if skill.id in self._skills:
            logger.warning("skill_overridden", skill_id=skill.id)
        self._skills[skill.id] = skill

    def get_skill(self, skill_id: str) -> Skill | None:
        return self._skills.get(skill_id)

    def has_skill(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def all_skills(self) -> list[Skill]:
        return list(self._skills.values())

    def get_tool_definitions(self, skill_ids: Sequence[str]) -> list[dict[str, Any]]:
        definitions: list[dict[str, Any]] = []
        for skill_id in skill_ids:
            skill = self.get_skill(skill_id)
            if skill is None:
                logger.warning("skill_not_found", skill_id=skill_id)
                continue
            definitions.append(tool_definition(skill))
        return definitions

    async def execute(self, skill_id: str, params: Mapping[str, Any]) -> Any:
        skill = self.get_skill(skill_id)
        if skill is None:
            TOOL_CALLS_TOTAL.labels(skill=skill_id, outcome="unknown").inc()
            raise SkillExecutionError(f"Skill not found: {skill_id}", skill_id)

        started = time.perf_counter()
        logger.info("skill_executing", skill_id=skill_id)
        try:
            if self._timeout is None:
                result = await skill.execute(params)
            else:
                result = await asyncio.wait_for(skill.execute(params), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            TOOL_CALLS_TOTAL.labels(skill=skill_id, outcome="timeout").inc()
            logger.warning("skill_deadline_exceeded", skill_id=skill_id, timeout=self._timeout)
            raise SkillExecutionError(
                f"Skill {skill_id} timed out", skill_id, DeadlineExceeded(f"skill:{skill_id}", self._timeout or 0.0)
            ) from exc
        except SkillExecutionError:
            TOOL_CALLS_TOTAL.labels(skill=skill_id, outcome="error").inc()
            raise
        except Exception as exc:
            TOOL_CALLS_TOTAL.labels(skill=skill_id, outcome="error").inc()
            logger.error("skill_failed", skill_id=skill_id, error=str(exc))
            raise SkillExecutionError(f"Failed to execute skill: {skill_id}", skill_id, exc) from exc

        TOOL_CALLS_TOTAL.labels(skill=skill_id, outcome="success").inc()
        logger.info(
            "skill_complete",
            skill_id=skill_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    def validate_skills(self, skill_ids: Iterable[str]) -> tuple[bool, list[str]]:
        missing = [skill_id for skill_id in skill_ids if not self.has_skill(skill_id)]
        return not missing, missing

    def skill_count(self) -> int:
        return len(self._skills)
