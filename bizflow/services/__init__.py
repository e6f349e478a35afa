"""Collaborators used by the orchestrator: completion, translation, agents and skills."""

from .agents import AgentDefinition, AgentRegistry
from .completion import CompletionResult, CompletionService, ToolCallRequest
from .skills import PromptSkill, Skill, SkillRegistry
from .translation import TranslationResult, TranslationService

__all__ = [
    "AgentDefinition",
    "AgentRegistry",
    "CompletionResult",
    "CompletionService",
    "PromptSkill",
    "Skill",
    "SkillRegistry",
    "ToolCallRequest",
    "TranslationResult",
    "TranslationService",
]
