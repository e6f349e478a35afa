from __future__ import annotations

from dataclasses import dataclass

import httpx
from fastapi import Request

from .core.config import Settings
from .core.logging import get_logger
from .flow.catalog import QuestionCatalog
from .flow.navigation import QuestionFlow
from .orchestration.executor import TaskExecutor
from .orchestration.planner import IntentPlanner
from .orchestration.question_flow import QuestionAwareOrchestrator
from .orchestration.synthesizer import ResponseSynthesizer
from .rules.catalog import build_default_engine
from .rules.engine import RuleTriggerEngine
from .services.agents import AgentRegistry
from .services.completion import CompletionService
from .services.skills import SkillRegistry
from .services.translation import TranslationService

logger = get_logger(name=__name__)


@dataclass
class ServiceContainer:
    """Collaborators built once at startup and shared by every request."""

    settings: Settings
    catalog: QuestionCatalog
    flow: QuestionFlow
    rules: RuleTriggerEngine
    agents: AgentRegistry
    skills: SkillRegistry
    translator: TranslationService
    orchestrator: QuestionAwareOrchestrator
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


def build_container(
    settings: Settings,
    *,
    completion: CompletionService | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceContainer:
    completion = completion or CompletionService.from_settings(settings)
    catalog = QuestionCatalog.from_file(settings.catalog.questionnaire_path)
    flow = QuestionFlow(catalog=catalog)
    agents = AgentRegistry.from_file(settings.catalog.agents_path)
    skills = SkillRegistry.from_file(
        settings.catalog.skills_path,
        completion,
        timeout_seconds=settings.execution.call_timeout_seconds,
    )
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.translation.timeout_seconds)
    translator = TranslationService(settings.translation, client=http_client)

    planner = IntentPlanner(settings, completion=completion, agents=agents, skills=skills)
    executor = TaskExecutor(settings, completion=completion, agents=agents, skills=skills)
    synthesizer = ResponseSynthesizer(settings, completion=completion, translator=translator)
    orchestrator = QuestionAwareOrchestrator(
        planner=planner,
        executor=executor,
        synthesizer=synthesizer,
        catalog=catalog,
        flow=flow,
    )
    logger.info(
        "container_built",
        questions=len(catalog),
        agents=agents.agent_count(),
        skills=skills.skill_count(),
        translation_available=translator.is_available(),
    )
    return ServiceContainer(
        settings=settings,
        catalog=catalog,
        flow=flow,
        rules=build_default_engine(),
        agents=agents,
        skills=skills,
        translator=translator,
        orchestrator=orchestrator,
        http_client=http_client,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_catalog(request: Request) -> QuestionCatalog:
    return get_container(request).catalog


def get_flow(request: Request) -> QuestionFlow:
    return get_container(request).flow


def get_rule_engine(request: Request) -> RuleTriggerEngine:
    return get_container(request).rules


def get_orchestrator(request: Request) -> QuestionAwareOrchestrator:
    return get_container(request).orchestrator
