"""Questionnaire-driven multi-agent business planning engine."""

__version__ = "0.1.0"
