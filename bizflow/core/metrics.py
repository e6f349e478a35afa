from __future__ import annotations

from prometheus_client import Counter, Histogram

ORCHESTRATION_RUNS_TOTAL = Counter(
    "bizflow_orchestration_runs_total",
    "Orchestration runs grouped by entry point and status",
    labelnames=("entry_point", "status"),
)

ORCHESTRATION_LATENCY_SECONDS = Histogram(
    "bizflow_orchestration_latency_seconds",
    "End-to-end orchestration runtime",
    labelnames=("entry_point",),
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, float("inf")),
)

AGENT_EXECUTIONS_TOTAL = Counter(
    "bizflow_agent_executions_total",
    "Agent task executions grouped by outcome",
    labelnames=("agent", "outcome"),
)

AGENT_LATENCY_SECONDS = Histogram(
    "bizflow_agent_latency_seconds",
    "Latency for each agent task",
    labelnames=("agent",),
)

TOOL_CALLS_TOTAL = Counter(
    "bizflow_tool_calls_total",
    "Skill invocations requested by agents grouped by outcome",
    labelnames=("skill", "outcome"),
)

RULE_FIRINGS_TOTAL = Counter(
    "bizflow_rule_firings_total",
    "Trigger rules whose conditions held, by trigger field",
    labelnames=("trigger_field",),
)

TRANSLATIONS_TOTAL = Counter(
    "bizflow_translations_total",
    "Translation attempts grouped by outcome",
    labelnames=("outcome",),
)


def record_agent_execution(agent: str, *, success: bool, duration_seconds: float) -> None:
    AGENT_EXECUTIONS_TOTAL.labels(agent=agent, outcome="success" if success else "failure").inc()
    AGENT_LATENCY_SECONDS.labels(agent=agent).observe(max(duration_seconds, 0.0))


def record_orchestration(entry_point: str, *, status: str, duration_seconds: float) -> None:
    ORCHESTRATION_RUNS_TOTAL.labels(entry_point=entry_point, status=status).inc()
    ORCHESTRATION_LATENCY_SECONDS.labels(entry_point=entry_point).observe(max(duration_seconds, 0.0))
