from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import ConfigurationError
from ..core.logging import get_logger

logger = get_logger(name=__name__)


class AgentDefinition(BaseModel):
    """Persona and model parameters for one agent."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    model: str | None = None
    system_prompt: str = Field(..., min_length=1)
    skills: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()
    temperature: float = Field(0.3, ge=0.0, le=2.0)
    phase: str | None = None


class AgentRegistry:
    """Read-only set of agent definitions keyed by id."""

    def __init__(self, agents: Iterable[AgentDefinition] = ()) -> None:
        self._agents: dict[str, AgentDefinition] = {}
        for agent in agents:
            if agent.id in self._agents:
                logger.warning("agent_overridden", agent_id=agent.id)
            self._agents[agent.id] = agent

    @classmethod
    def from_payload(cls, payload: Sequence[Mapping[str, Any]]) -> "AgentRegistry":
        agents: list[AgentDefinition] = []
        for entry in payload:
            if not isinstance(entry, Mapping):
                logger.warning("agent_definition_invalid", reason="not a mapping")
                continue
            if not (entry.get("id") and entry.get("name") and entry.get("system_prompt")):
                logger.warning("agent_definition_invalid", agent_id=entry.get("id"), reason="missing required field")
                continue
            try:
                agents.append(AgentDefinition.model_validate(dict(entry)))
            except ValidationError as exc:
                logger.warning("agent_definition_invalid", agent_id=entry.get("id"), reason=str(exc))
        registry = cls(agents)
        logger.info("agents_loaded", count=registry.agent_count())
        return registry

    @classmethod
    def from_file(cls, path: Path | str) -> "AgentRegistry":
        path = Path(path)
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8")) or []
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Agent definitions not found at {path}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Agent definitions at {path} are not valid YAML: {exc}") from exc
        if isinstance(payload, Mapping):
            payload = payload.get("agents") or []
        if not isinstance(payload, list):
            raise ConfigurationError(f"Agent definitions at {path} must be a list")
        return cls.from_payload(payload)

    def get_agent(self, agent_id: str) -> AgentDefinition | None:
        return self._agents.get(agent_id)

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def get_agents(self, agent_ids: Iterable[str]) -> list[AgentDefinition]:
        selected: list[AgentDefinition] = []
        missing: list[str] = []
        for agent_id in agent_ids:
            agent = self._agents.get(agent_id)
            if agent is None:
                missing.append(agent_id)
            else:
                selected.append(agent)
        if missing:
            logger.warning("agents_not_found", missing=missing)
        return selected

    def all_agents(self) -> list[AgentDefinition]:
        return list(self._agents.values())

    def agents_by_skill(self, skill_id: str) -> list[AgentDefinition]:
        return [agent for agent in self._agents.values() if skill_id in agent.skills]

    def search(self, query: str) -> list[AgentDefinition]:
        needle = query.lower()
        matches: list[AgentDefinition] = []
        for agent in self._agents.values():
            haystack = " ".join([agent.name, agent.description, *agent.skills, *agent.tools]).lower()
            if needle in haystack:
                matches.append(agent)
        return matches

    def validate_agents(self, agent_ids: Iterable[str]) -> tuple[bool, list[str]]:
        missing = [agent_id for agent_id in agent_ids if agent_id not in self._agents]
        return not missing, missing

    def agent_count(self) -> int:
        return len(self._agents)
