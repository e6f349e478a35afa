"""Rule trigger engine: auto-population and agent/skill scheduling from answers."""

from .catalog import build_default_engine, default_trigger_rules
from .conditions import Condition, Contains, Equals, Exists, parse_condition
from .engine import (
    AgentInvocation,
    AgentTrigger,
    AutoPopulate,
    RuleTriggerEngine,
    RuleTriggerResult,
    SkillInvocation,
    SkillTrigger,
    TriggerRule,
    interpolate,
)
from .formula import Formula, evaluate_formula
from .lookup import LookupTables, default_lookup_tables

__all__ = [
    "AgentInvocation",
    "AgentTrigger",
    "AutoPopulate",
    "Condition",
    "Contains",
    "Equals",
    "Exists",
    "Formula",
    "LookupTables",
    "RuleTriggerEngine",
    "RuleTriggerResult",
    "SkillInvocation",
    "SkillTrigger",
    "TriggerRule",
    "build_default_engine",
    "default_lookup_tables",
    "default_trigger_rules",
    "evaluate_formula",
    "interpolate",
    "parse_condition",
]
