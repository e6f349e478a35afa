from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ..core.errors import ConfigurationError


class LookupTables:
    """Read-only named tables used by lookup auto-population."""

    def __init__(self, tables: Mapping[str, Mapping[str, Any]]) -> None:
        frozen: dict[str, Mapping[str, Any]] = {}
        for table_id, table in tables.items():
            if not isinstance(table, Mapping):
                raise ConfigurationError(f"Lookup table {table_id!r} must be a mapping")
            bad_keys = [key for key in table if not isinstance(key, str)]
            if bad_keys:
                raise ConfigurationError(f"Lookup table {table_id!r} has non-string keys: {bad_keys!r}")
            frozen[table_id] = MappingProxyType(dict(table))
        self._tables = MappingProxyType(frozen)

    def __contains__(self, table_id: object) -> bool:
        return table_id in self._tables

    def ids(self) -> Iterable[str]:
        return self._tables.keys()

    def table(self, table_id: str) -> Mapping[str, Any] | None:
        return self._tables.get(table_id)

    def resolve(self, table_id: str, answer: Any) -> Any:
        """Exact key match first, then the first key contained in the answer.

        The substring pass compares case-insensitively in table order. A list
        answer can never match exactly, so only its text form is searched.
        Returns None when nothing matches.
        """
        table = self._tables.get(table_id)
        if table is None or answer is None:
            return None
        if isinstance(answer, (str, int, float)) and answer in table:
            exact = table[answer]
            if exact is not None:
                return exact
        haystack = _as_text(answer).lower()
        for key, value in table.items():
            if key.lower() in haystack:
                return value
        return None


def _as_text(answer: Any) -> str:
    if isinstance(answer, (list, tuple)):
        return ",".join(str(item) for item in answer)
    return str(answer)


DEFAULT_LOOKUP_TABLES: dict[str, dict[str, Any]] = {
    "location_to_timezone": {
        "India": "Asia/Kolkata",
        "Hyderabad": "Asia/Kolkata",
        "Mumbai": "Asia/Kolkata",
        "Dubai": "Asia/Dubai",
        "USA": "America/New_York",
        "UK": "Europe/London",
    },
    "location_to_currency": {
        "India": "INR",
        "Hyderabad": "INR",
        "Mumbai": "INR",
        "Dubai": "AED",
        "USA": "USD",
        "UK": "GBP",
    },
    "industry_revenue_templates": {
        "SaaS": ["Subscription Revenue", "Professional Services", "Add-on Revenue"],
        "Healthcare": ["Clinical Revenue", "Pharmacy Revenue", "Lab & Diagnostics"],
        "Retail": ["Product Sales", "E-commerce Revenue", "Services Revenue"],
        "Manufacturing": ["Product Sales", "Spare Parts", "Maintenance Services"],
    },
    "industry_margins": {
        "SaaS": 0.75,
        "Professional Services": 0.60,
        "Healthcare": 0.40,
        "Retail": 0.30,
        "Manufacturing": 0.25,
        "E-commerce": 0.35,
    },
}


def default_lookup_tables() -> LookupTables:
    return LookupTables(DEFAULT_LOOKUP_TABLES)
