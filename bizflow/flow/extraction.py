from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable

_IDEA_KEYWORDS: dict[str, tuple[str, ...]] = {
    "saas": ("saas", "software", "platform", "app", "subscription"),
    "b2b": ("b2b", "business", "enterprise", "companies", "organizations"),
    "b2c": ("b2c", "consumer", "customer", "people", "individual"),
    "ecommerce": ("ecommerce", "online store", "selling", "marketplace"),
    "ai": ("ai", "artificial intelligence", "machine learning", "ml", "automation"),
}

_MOAT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "technology": ("proprietary", "patent", "algorithm", "technology", "ai", "ml"),
    "network": ("network", "connections", "relationships", "partnerships"),
    "expertise": ("experience", "years", "expert", "worked at", "built"),
    "data": ("data", "insights", "analytics", "information"),
    "brand": ("brand", "reputation", "trust", "recognition"),
}

_QUANTIFIED_PAIN = re.compile(r"\d+%|\$[\d,]+|₹[\d,]+|\d+\s*(hours|minutes|days|weeks)")


def _extract_business_idea(answer: str) -> dict[str, Any]:
    extracted: dict[str, Any] = {"raw_idea": answer}
    lowered = answer.lower()
    for key, terms in _IDEA_KEYWORDS.items():
        if any(term in lowered for term in terms):
            extracted[f"is_{key}"] = True
    return extracted


def _extract_customer_problem(answer: str) -> dict[str, Any]:
    extracted: dict[str, Any] = {"raw_problem": answer, "has_quantified_pain": False}
    if _QUANTIFIED_PAIN.search(answer):
        extracted["has_quantified_pain"] = True
        extracted["pain_urgency"] = "high"
    return extracted


def _extract_unique_advantage(answer: str) -> dict[str, Any]:
    lowered = answer.lower()
    moats = [moat for moat, terms in _MOAT_KEYWORDS.items() if any(term in lowered for term in terms)]
    if len(moats) >= 2:
        strength = "strong"
    elif moats:
        strength = "medium"
    else:
        strength = "weak"
    return {"raw_advantage": answer, "moat_types": moats, "moat_strength": strength}


EXTRACTORS: dict[str, Callable[[str], dict[str, Any]]] = {
    "business_idea_detail": _extract_business_idea,
    "customer_problem": _extract_customer_problem,
    "unique_advantage": _extract_unique_advantage,
}


def extract_from_answer(question_id: str, answer: Any) -> dict[str, Any]:
    """Pull structured fields out of a raw answer; unknown questions keep the raw value."""
    extractor = EXTRACTORS.get(question_id)
    if extractor is not None and isinstance(answer, str):
        return extractor(answer)
    return {"value": answer, "timestamp": datetime.now(timezone.utc).isoformat()}
