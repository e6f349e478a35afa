from __future__ import annotations


class BizflowError(RuntimeError):
    """Base class for engine failures."""


class ConfigurationError(BizflowError):
    """Raised when catalog, rule or registry data is invalid at load time."""


class RuleEvaluationError(BizflowError):
    """Raised when a skip or trigger predicate cannot be evaluated."""


class FormulaEvaluationError(BizflowError):
    """Raised when an auto-populate formula cannot be parsed or resolved."""


class CompletionError(BizflowError):
    """Raised when the completion service fails after retries."""


class DeadlineExceeded(BizflowError):
    """Raised when a completion or skill call outlives its deadline."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f"{operation} exceeded deadline of {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class AgentExecutionError(BizflowError):
    """Raised when an agent task cannot run."""

    def __init__(self, message: str, agent_id: str) -> None:
        super().__init__(message)
        self.agent_id = agent_id


class SkillExecutionError(BizflowError):
    """Raised when a skill invocation fails."""

    def __init__(self, message: str, skill_id: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.skill_id = skill_id
        self.cause = cause


class OrchestratorError(BizflowError):
    """The only orchestration failure that propagates to callers."""

    def __init__(self, message: str, code: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.cause = cause
