"""Default trigger rules for the business model questionnaire."""

from __future__ import annotations

import re
from typing import Any, Mapping

from .engine import RuleTriggerEngine, TriggerRule
from .lookup import LookupTables

_GROWTH_BANDS: tuple[tuple[str, float], ...] = (
    ("20-40", 0.30),
    ("50-100", 0.75),
    ("100-200", 1.50),
    ("200+", 2.00),
)


def _primary_industry(answers: Mapping[str, Any]) -> str:
    industries = answers.get("target_industries")
    if isinstance(industries, (list, tuple)):
        return str(industries[0]) if industries else "General"
    return str(industries) if industries else "General"


def _as_list(answer: Any) -> list[Any]:
    return list(answer) if isinstance(answer, (list, tuple)) else [answer]


def _parse_amount(answer: Any) -> float:
    if isinstance(answer, (int, float)) and not isinstance(answer, bool):
        return float(answer)
    digits = re.sub(r"[^0-9.]", "", str(answer))
    try:
        return float(digits)
    except ValueError:
        return 0.0


def _growth_rate(answers: Mapping[str, Any]) -> float:
    band = str(answers.get("growth_rate") or "50-100")
    rate = 0.75
    for marker, value in _GROWTH_BANDS:
        if marker in band:
            rate = value
    return rate


def market_sizing_params(answer: Any, answers: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "industry": _primary_industry(answers),
        "geography": answers.get("primary_market") or "India",
        "business_model": answer,
    }


def financial_model_params(answer: Any, answers: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "revenue_target": _parse_amount(answer),
        "industry": _primary_industry(answers),
        "business_model": answers.get("revenue_model"),
        "growth_rate": _growth_rate(answers),
    }


def competitor_params(answer: Any, answers: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "competitors": _as_list(answer),
        "industry": _primary_industry(answers),
        "geography": answers.get("primary_market") or "India",
        "your_business": answers.get("business_idea_detail") or answers.get("customer_problem"),
    }


def compliance_params(answer: Any, answers: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "industry": _primary_industry(answers),
        "geography": answers.get("primary_market") or "India",
        "business_type": answers.get("customer_type") or "B2C",
        "licenses": _as_list(answer),
        "regulations": answers.get("regulations") or [],
    }


def document_params(answer: Any, answers: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "all_responses": dict(answers),
        "output_formats": answers.get("output_formats") or ["pdf"],
        "detail_level": answers.get("detail_level") or "standard",
        "include_ai_recommendations": answers.get("ai_recommendations") == "yes_include",
    }


def _exists(*fields: str) -> list[dict[str, str]]:
    return [{"field": field, "operator": "exists"} for field in fields]


DEFAULT_TRIGGER_RULES: tuple[dict[str, Any], ...] = (
    # onboarding
    {
        "trigger_field": "user_location",
        "auto_populate": [
            {"target_field": "timezone", "source": "lookup", "lookup_table": "location_to_timezone"},
            {"target_field": "currency", "source": "lookup", "lookup_table": "location_to_currency"},
        ],
    },
    # discovery
    {
        "trigger_field": "target_industries",
        "auto_populate": [
            {"target_field": "revenue_stream_templates", "source": "lookup", "lookup_table": "industry_revenue_templates"},
            {"target_field": "gross_margin_benchmark", "source": "lookup", "lookup_table": "industry_margins"},
        ],
        "trigger_agents": [
            {
                "agent_id": "market_analyst",
                "prompt_template": (
                    "Analyze the {{target_industries}} industry: market trends, growth potential, key success "
                    "factors, and competitive dynamics in {{user_location}}."
                ),
            }
        ],
    },
    # business context
    {
        "trigger_field": "business_idea_detail",
        "trigger_agents": [
            {
                "agent_id": "problem_validator",
                "prompt_template": (
                    'Analyze this business idea: "{{business_idea_detail}}". Validate the problem-solution fit, '
                    "identify potential challenges, and suggest improvements."
                ),
            }
        ],
    },
    # market
    {
        "trigger_field": "customer_type",
        "conditions": _exists("primary_market", "target_industries"),
        "trigger_skills": [{"skill_id": "market_sizing_calculator", "params_builder": market_sizing_params}],
        "trigger_agents": [
            {
                "agent_id": "market_analyst",
                "prompt_template": (
                    "Analyze the {{customer_type}} market for {{target_industries}} in {{primary_market}}. "
                    "Calculate TAM, SAM, SOM and provide market entry strategy."
                ),
            }
        ],
    },
    {
        "trigger_field": "customer_problem",
        "trigger_agents": [
            {
                "agent_id": "problem_validator",
                "prompt_template": (
                    'Validate this customer problem: "{{customer_problem}}". Assess severity, frequency, '
                    "willingness to pay, and existing solutions in the {{target_industries}} industry."
                ),
            }
        ],
    },
    # revenue
    {
        "trigger_field": "revenue_target_year1",
        "conditions": _exists("revenue_model", "target_industries"),
        "trigger_skills": [{"skill_id": "financial_modeling", "params_builder": financial_model_params}],
        "trigger_agents": [
            {
                "agent_id": "financial_modeler",
                "prompt_template": (
                    "Validate if ₹{{revenue_target_year1}} Year 1 revenue target is realistic for a "
                    "{{revenue_model}} business in {{target_industries}}. Provide detailed 5-year financial "
                    "projections with {{growth_rate}} growth rate."
                ),
            }
        ],
    },
    {
        "trigger_field": "ltv",
        "conditions": _exists("target_cac"),
        "auto_populate": [{"target_field": "ltv_cac_ratio", "source": "calculation", "formula": "ltv / target_cac"}],
    },
    {
        "trigger_field": "marketing_budget",
        "conditions": _exists("monthly_customers"),
        "auto_populate": [
            {
                "target_field": "calculated_cac",
                "source": "calculation",
                "formula": "marketing_budget / monthly_customers",
            }
        ],
    },
    # competition
    {
        "trigger_field": "top_competitors",
        "conditions": _exists("target_industries", "primary_market"),
        "trigger_skills": [{"skill_id": "competitor_analysis", "params_builder": competitor_params}],
    },
    {
        "trigger_field": "competitive_advantage",
        "trigger_agents": [
            {
                "agent_id": "positioning_analyst",
                "prompt_template": (
                    'Analyze this competitive advantage: "{{competitive_advantage}}". Assess defensibility, '
                    "sustainability, and market positioning strategy against competitors: {{top_competitors}}."
                ),
            }
        ],
    },
    # operations
    {
        "trigger_field": "licenses_needed",
        "conditions": _exists("target_industries", "primary_market"),
        "trigger_skills": [{"skill_id": "compliance_checker", "params_builder": compliance_params}],
    },
    {
        "trigger_field": "salary_budget",
        "conditions": _exists("team_size_year1"),
        # 30% overhead on payroll
        "auto_populate": [
            {"target_field": "monthly_burn_rate", "source": "calculation", "formula": "salary_budget * 1.3"}
        ],
    },
    # go-to-market
    {
        "trigger_field": "acquisition_channels",
        "conditions": _exists("customer_type", "marketing_budget"),
        "trigger_agents": [
            {
                "agent_id": "gtm_strategist",
                "prompt_template": (
                    "Create a go-to-market strategy for {{customer_type}} customers using channels: "
                    "{{acquisition_channels}}. Budget: {{marketing_budget}}. Target: {{monthly_customers}} "
                    "customers/month. Provide detailed channel mix and CAC targets."
                ),
            }
        ],
    },
    # funding
    {
        "trigger_field": "equity_dilution",
        "conditions": _exists("capital_needed"),
        "auto_populate": [
            {
                "target_field": "implied_valuation",
                "source": "calculation",
                "formula": "(capital_needed / equity_dilution) * 100",
            }
        ],
    },
    {
        "trigger_field": "funding_stage",
        "conditions": _exists("target_industries", "revenue_target_year1"),
        "trigger_agents": [
            {
                "agent_id": "funding_advisor",
                "prompt_template": (
                    "Recommend {{funding_stage}} funding strategy for {{target_industries}} business with Year 1 "
                    "revenue target of ₹{{revenue_target_year1}}. Capital needed: ₹{{capital_needed}}. Suggest "
                    "investor types, typical terms, and fundraising timeline."
                ),
            }
        ],
    },
    # risk
    {
        "trigger_field": "key_risks",
        "trigger_agents": [
            {
                "agent_id": "risk_analyst",
                "prompt_template": (
                    "Analyze these business risks: {{key_risks}}. For each risk, assess: (1) Probability, "
                    "(2) Impact, (3) Mitigation strategies, (4) Early warning indicators. Industry: "
                    "{{target_industries}}, Market: {{primary_market}}."
                ),
            }
        ],
    },
    # final review
    {
        "trigger_field": "final_confirmation",
        "conditions": _exists("output_formats"),
        "trigger_skills": [{"skill_id": "branded_document_generator", "params_builder": document_params}],
    },
)


def default_trigger_rules() -> list[TriggerRule]:
    return [TriggerRule.model_validate(item) for item in DEFAULT_TRIGGER_RULES]


def build_default_engine(lookup_tables: LookupTables | None = None) -> RuleTriggerEngine:
    return RuleTriggerEngine(default_trigger_rules(), lookup_tables=lookup_tables)
