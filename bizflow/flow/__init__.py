"""Question flow graph: catalog, skip rules, branch points and navigation."""

from .branching import BranchPoint, BranchTable, default_branch_table
from .catalog import Phase, Question, QuestionCatalog, QuestionType
from .extraction import extract_from_answer
from .navigation import AnswerOutcome, Progress, QuestionFlow
from .skip_rules import FieldPredicate, PredicateOperator, SkipRule, SkipRuleBook, default_skip_rules

__all__ = [
    "AnswerOutcome",
    "BranchPoint",
    "BranchTable",
    "FieldPredicate",
    "Phase",
    "PredicateOperator",
    "Progress",
    "Question",
    "QuestionCatalog",
    "QuestionFlow",
    "QuestionType",
    "SkipRule",
    "SkipRuleBook",
    "default_branch_table",
    "default_skip_rules",
    "extract_from_answer",
]
