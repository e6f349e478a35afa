from .executor import TaskExecutor
from .orchestrator import Orchestrator
from .planner import IntentPlanner, apply_minimum_agent_policy, suggested_intent
from .question_flow import QuestionAwareOrchestrator, build_orchestrator_context
from .synthesizer import ResponseSynthesizer

__all__ = [
    "IntentPlanner",
    "Orchestrator",
    "QuestionAwareOrchestrator",
    "ResponseSynthesizer",
    "TaskExecutor",
    "apply_minimum_agent_policy",
    "build_orchestrator_context",
    "suggested_intent",
]
