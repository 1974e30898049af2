"""Data ingestion module."""

from .calendar import next_business_days
from .providers import (
    FinnhubProvider,
    IDataProvider,
    YFinanceProvider,
    default_providers,
    ensure_min_history,
    fetch_history_with_fallback,
    get_provider,
    lookup_company_name,
    normalize_symbol,
)

__all__ = [
    "IDataProvider",
    "YFinanceProvider",
    "FinnhubProvider",
    "get_provider",
    "default_providers",
    "fetch_history_with_fallback",
    "lookup_company_name",
    "ensure_min_history",
    "normalize_symbol",
    "next_business_days",
]
