from __future__ import annotations

import time
from typing import Any, AsyncIterator, Mapping

from ..core.errors import OrchestratorError
from ..core.logging import get_logger
from ..core.metrics import record_orchestration
from ..rules.engine import RuleTriggerResult
from ..schemas.orchestrator import AgentOutput, ExecutionPlan, Intent, OrchestrationResult
from .executor import TaskExecutor, target_language
from .planner import IntentPlanner, suggested_intent, trigger_prompts
from .synthesizer import ResponseSynthesizer

logger = get_logger(name=__name__)


class Orchestrator:
    """Intent, plan, execute, synthesize."""

    entry_point = "request"

    def __init__(
        self,
        *,
        planner: IntentPlanner,
        executor: TaskExecutor,
        synthesizer: ResponseSynthesizer,
    ) -> None:
        self.planner = planner
        self.executor = executor
        self.synthesizer = synthesizer

    async def process_request(self, message: str, context: Mapping[str, Any] | None = None) -> OrchestrationResult:
        context = dict(context or {})
        started = time.perf_counter()
        logger.info("orchestration_started", message=message[:100], has_context=bool(context))
        try:
            intent = await self.planner.resolve_intent(message, context)
            plan = self.planner.create_plan(intent)
            logger.info("plan_created", tasks=len(plan.tasks), execution_type=plan.execution_type.value)
            outputs = await self.executor.execute(plan, context)
            synthesis = await self.synthesizer.synthesize(
                outputs,
                message,
                next_question=context.get("nextQuestion"),
                language=target_language(context),
            )
        except OrchestratorError:
            record_orchestration(self.entry_point, status="failed", duration_seconds=time.perf_counter() - started)
            raise
        except Exception as exc:
            record_orchestration(self.entry_point, status="failed", duration_seconds=time.perf_counter() - started)
            logger.exception("orchestration_failed", message=message[:100])
            raise OrchestratorError("Failed to process request", "ORCHESTRATION_FAILED", exc) from exc

        return self._finish(synthesis, outputs, intent, plan, started, status="completed")

    async def run_triggered(
        self, result: RuleTriggerResult, context: Mapping[str, Any] | None = None
    ) -> list[AgentOutput]:
        """Plan and run the agents an answer's trigger rules queued.

        Each task carries its rule prompt as the description. There is no
        synthesis step; the outputs go back alongside the answer.
        """
        intent = suggested_intent(result)
        if intent is None or not intent.agents:
            return []
        started = time.perf_counter()
        try:
            plan = self.planner.create_plan(intent, descriptions=trigger_prompts(result))
            outputs = await self.executor.execute(plan, dict(context or {}))
        except Exception as exc:
            record_orchestration("triggers", status="failed", duration_seconds=time.perf_counter() - started)
            logger.exception("triggered_agents_failed", agents=intent.agents)
            raise OrchestratorError("Failed to run triggered agents", "ORCHESTRATION_FAILED", exc) from exc
        record_orchestration("triggers", status="completed", duration_seconds=time.perf_counter() - started)
        logger.info("triggered_agents_completed", agents=intent.agents, failed=sum(not o.success for o in outputs))
        return outputs

    async def stream_request(
        self, message: str, context: Mapping[str, Any] | None = None
    ) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event, payload)`` pairs as each orchestration stage finishes.

        Failures end the stream with a single ``error`` event instead of raising.
        """
        context = dict(context or {})
        started = time.perf_counter()
        try:
            yield "analyzing_intent", {"message": "Analyzing your request..."}
            intent = await self.planner.resolve_intent(message, context)
            yield "intent_analyzed", {"intent": intent.model_dump(mode="json")}

            plan = self.planner.create_plan(intent)
            yield "plan_created", {"plan": plan.model_dump(mode="json")}

            agent_names = [task.agent_name for task in plan.tasks]
            yield "executing_agents", {
                "agents": agent_names,
                "message": f"Executing specialized agents: {', '.join(agent_names)}...",
            }
            outputs = await self.executor.execute(plan, context)
            yield "execution_complete", {"agent_outputs": [output.model_dump(mode="json") for output in outputs]}

            yield "synthesizing", {"message": "Synthesizing insights..."}
            synthesis = await self.synthesizer.synthesize(
                outputs,
                message,
                next_question=context.get("nextQuestion"),
                language=target_language(context),
            )
        except Exception as exc:
            code = exc.code if isinstance(exc, OrchestratorError) else "ORCHESTRATION_FAILED"
            record_orchestration("stream", status="failed", duration_seconds=time.perf_counter() - started)
            logger.error("orchestration_stream_failed", code=code, error=str(exc))
            yield "error", {"code": code, "error": str(exc)}
            return

        record_orchestration("stream", status="completed", duration_seconds=time.perf_counter() - started)
        yield "complete", {
            "synthesis": synthesis,
            "metadata": {"agents_executed": len(outputs), "execution_type": plan.execution_type.value},
        }

    def _finish(
        self,
        synthesis: str,
        outputs: list[AgentOutput],
        intent: Intent,
        plan: ExecutionPlan,
        started: float,
        *,
        status: str,
        entry_point: str | None = None,
        **extra: Any,
    ) -> OrchestrationResult:
        elapsed = time.perf_counter() - started
        record_orchestration(entry_point or self.entry_point, status=status, duration_seconds=elapsed)
        logger.info(
            "orchestration_completed",
            entry_point=entry_point or self.entry_point,
            status=status,
            duration_ms=round(elapsed * 1000, 2),
            failed_tasks=sum(1 for output in outputs if not output.success),
        )
        return OrchestrationResult(
            synthesis=synthesis,
            agent_outputs=outputs,
            intent=intent,
            plan=plan,
            execution_time_ms=round(elapsed * 1000, 2),
            **extra,
        )
