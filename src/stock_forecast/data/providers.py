"""Daily OHLCV providers for equities, with a fallback chain across sources."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import pandas as pd
import requests
import yfinance as yf
from loguru import logger

from ..config import DEFAULT_SYMBOL_SUFFIX, FINNHUB_API_KEY, HISTORY_MONTHS, MIN_HISTORY_BARS
from ..errors import (
    DataSourceError,
    InsufficientDataError,
    SymbolNotFoundError,
    TransientDataSourceError,
)

BAR_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


def normalize_symbol(code: str, default_suffix: str = DEFAULT_SYMBOL_SUFFIX) -> str:
    """
    Turn a user-entered stock code into a provider symbol.

    Codes without an exchange suffix get ``default_suffix`` ('7203' -> '7203.T').
    """
    if code is None or not code.strip():
        raise ValueError("Enter a stock code")

    code = code.strip().upper()
    if "." in code or not default_suffix:
        return code
    return f"{code}{default_suffix}"


def _history_window(months: int):
    end = datetime.now(timezone.utc)
    start = end - pd.DateOffset(months=months)
    return start.to_pydatetime(), end


def _finalize_bars(df: pd.DataFrame) -> pd.DataFrame:
    """Sort, de-duplicate and keep only bars with a close."""
    df = df[BAR_COLUMNS].dropna(subset=["close"])
    df = df.sort_values("date").drop_duplicates(subset=["date"], keep="first")
    return df.reset_index(drop=True)


class IDataProvider(ABC):
    """Interface for data providers. Implement this to add new data sources."""

    name: str = "provider"

    @abstractmethod
    def fetch_history(self, symbol: str, months: int = HISTORY_MONTHS) -> pd.DataFrame:
        """
        Fetch daily OHLCV bars for the last ``months`` months.

        Args:
            symbol: Provider symbol (see normalize_symbol)
            months: Lookback in calendar months

        Returns:
            DataFrame with columns: date, open, high, low, close, volume,
            ascending by date, no duplicate dates

        Raises:
            SymbolNotFoundError: the provider does not know the symbol
            TransientDataSourceError: network/upstream failure, worth another source
            DataSourceError: any other provider failure
        """
        pass

    def company_name(self, symbol: str) -> str:
        """Display name of the listed company; the symbol itself when unknown."""
        return symbol


class YFinanceProvider(IDataProvider):
    """
    Stock data provider using yfinance (Yahoo Finance).
    Free, no API key required.
    """

    name = "yfinance"

    def __init__(self):
        """Initialize yfinance provider."""
        logger.info("Initialized yfinance provider")

    def fetch_history(self, symbol: str, months: int = HISTORY_MONTHS) -> pd.DataFrame:
        start, end = _history_window(months)
        logger.info(f"Fetching {symbol} 1d from yfinance: {start} to {end}")

        try:
            ticker = yf.Ticker(symbol)
            df = ticker.history(start=start, end=end, interval="1d", auto_adjust=True)
        except Exception as e:
            # yfinance surfaces HTTP, rate-limit and parsing failures alike
            logger.error(f"Error fetching {symbol} from yfinance: {e}")
            raise TransientDataSourceError(
                f"Network error while fetching {symbol}. Check the connection and retry."
            ) from e

        if df is None or df.empty:
            logger.warning(f"No data returned for {symbol} from yfinance")
            raise SymbolNotFoundError(f"Symbol '{symbol}' not found. Check the stock code.")

        # yfinance uses 'Date' for daily, 'Datetime' for intraday
        df = df.reset_index()
        column_mapping = {}
        for col in df.columns:
            col_lower = str(col).lower()
            if col_lower in ["open", "high", "low", "close", "volume"]:
                column_mapping[col] = col_lower
            elif col_lower in ["date", "datetime"]:
                column_mapping[col] = "date"
        df = df.rename(columns=column_mapping)

        missing_cols = [c for c in BAR_COLUMNS if c not in df.columns]
        if missing_cols:
            logger.error(f"Missing required columns: {missing_cols}. Available: {df.columns.tolist()}")
            raise DataSourceError(f"Unexpected yfinance payload for {symbol}: missing {missing_cols}")

        # Daily bars are labelled by exchange-local calendar date
        dates = pd.to_datetime(df["date"])
        if dates.dt.tz is not None:
            dates = dates.dt.tz_localize(None)
        df["date"] = dates.dt.normalize()

        df = _finalize_bars(df)
        logger.info(f"Fetched {len(df)} bars for {symbol}")
        return df

    def company_name(self, symbol: str) -> str:
        """Short (else long) company name from the ticker metadata."""
        try:
            info = yf.Ticker(symbol).info or {}
        except Exception as e:
            # The name is cosmetic; a failed lookup must not fail the forecast
            logger.warning(f"Could not fetch company name for {symbol} from yfinance: {e}")
            return symbol
        return info.get("shortName") or info.get("longName") or symbol


class FinnhubProvider(IDataProvider):
    """Stock data provider using the Finnhub REST API (API key required)."""

    name = "finnhub"
    BASE_URL = "https://finnhub.io/api/v1"

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("Finnhub API key is required")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.info("Initialized Finnhub provider")

    def _get(self, path: str, params: Dict, what: str) -> Dict:
        """GET a Finnhub endpoint and decode the JSON body, mapping failures to DataSourceError."""
        params = {**params, "token": self.api_key}

        try:
            res = self.session.get(f"{self.BASE_URL}{path}", params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error on finnhub {path} for {what}: {e}")
            raise TransientDataSourceError(
                f"Network error while fetching {what}. Check the connection and retry."
            ) from e

        if res.status_code == 401:
            raise DataSourceError("Finnhub API key is invalid. Configure a valid key.")
        if res.status_code == 429:
            raise TransientDataSourceError("Finnhub rate limit reached. Wait a moment and retry.")
        if res.status_code >= 500:
            raise TransientDataSourceError(f"Finnhub unavailable (HTTP {res.status_code})")
        if not res.ok:
            raise DataSourceError(f"Finnhub request failed (HTTP {res.status_code})")

        try:
            return res.json()
        except ValueError as e:
            raise TransientDataSourceError(f"Malformed Finnhub response for {what}") from e

    def fetch_history(self, symbol: str, months: int = HISTORY_MONTHS) -> pd.DataFrame:
        start, end = _history_window(months)
        params = {
            "symbol": symbol,
            "resolution": "D",
            "from": int(start.timestamp()),
            "to": int(end.timestamp()),
        }
        logger.info(f"Fetching {symbol} 1d from finnhub: {start} to {end}")

        data = self._get("/stock/candle", params, symbol)

        if data.get("s") == "no_data" or not data.get("c"):
            raise SymbolNotFoundError(f"Symbol '{symbol}' not found. Check the stock code.")

        df = pd.DataFrame(
            {
                "date": pd.to_datetime(data["t"], unit="s").normalize(),
                "open": data["o"],
                "high": data["h"],
                "low": data["l"],
                "close": data["c"],
                "volume": data["v"],
            }
        )

        df = _finalize_bars(df)
        logger.info(f"Fetched {len(df)} bars for {symbol}")
        return df

    def search_symbols(self, query: str, suffix: str = DEFAULT_SYMBOL_SUFFIX) -> List[Dict[str, str]]:
        """
        Look up listed securities by code or name.

        Args:
            query: Free text, e.g. 'toyota' or '7203'
            suffix: Keep only symbols listed with this exchange suffix ('' keeps all)

        Returns:
            List of {symbol, description, type} dicts in Finnhub's ranking order
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("Enter a search term")

        data = self._get("/search", {"q": query}, f"search '{query}'")

        matches = []
        for item in data.get("result") or []:
            symbol = str(item.get("symbol", ""))
            if not symbol or (suffix and not symbol.endswith(suffix)):
                continue
            matches.append(
                {
                    "symbol": symbol,
                    "description": str(item.get("description", "")),
                    "type": str(item.get("type", "")),
                }
            )

        logger.info(f"Symbol search '{query}': {len(matches)} match(es) with suffix '{suffix}'")
        return matches


def get_provider(name: str, **kwargs) -> IDataProvider:
    """
    Factory function to get a data provider by name.

    Args:
        name: 'yfinance' or 'finnhub'
        **kwargs: Provider-specific arguments

    Returns:
        Configured IDataProvider instance
    """
    if name.lower() in ("yfinance", "yahoo"):
        return YFinanceProvider()
    elif name.lower() == "finnhub":
        return FinnhubProvider(api_key=kwargs.get("api_key", FINNHUB_API_KEY))
    else:
        raise ValueError(f"Unknown provider: {name}. Use 'yfinance' or 'finnhub'")


def default_providers() -> List[IDataProvider]:
    """Yahoo first; Finnhub as fallback when an API key is configured."""
    providers: List[IDataProvider] = [YFinanceProvider()]
    if FINNHUB_API_KEY:
        providers.append(FinnhubProvider(api_key=FINNHUB_API_KEY))
    return providers


def fetch_history_with_fallback(
    providers: Sequence[IDataProvider],
    symbol: str,
    months: int = HISTORY_MONTHS,
) -> pd.DataFrame:
    """
    Try providers in order.

    A missing symbol stops the chain immediately; any other provider
    failure moves on to the next provider. The last failure is raised
    when every provider failed.
    """
    if not providers:
        raise ValueError("No data providers configured")

    last_error: Optional[DataSourceError] = None
    for provider in providers:
        try:
            return provider.fetch_history(symbol, months=months)
        except SymbolNotFoundError:
            raise
        except DataSourceError as e:
            logger.warning(f"{provider.name} failed for {symbol}: {e}. Trying next provider")
            last_error = e

    raise last_error


def lookup_company_name(providers: Sequence[IDataProvider], symbol: str) -> str:
    """First company name a provider knows for ``symbol``; the symbol otherwise."""
    for provider in providers:
        name = provider.company_name(symbol)
        if name and name != symbol:
            return name
    return symbol


def ensure_min_history(bars: pd.DataFrame, minimum: int = MIN_HISTORY_BARS) -> pd.DataFrame:
    """Reject histories shorter than ``minimum`` bars before training."""
    if len(bars) < minimum:
        raise InsufficientDataError(
            f"Only {len(bars)} bars of history available; at least {minimum} are "
            f"required. Choose a symbol with a longer trading history.",
            n_bars=len(bars),
            required=minimum,
        )
    return bars
