import os
import math
import logging
import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from supabase import create_client, Client

logger = logging.getLogger("b3_service")

PRICES_TABLE = "b3_prices"
DIVIDENDS_TABLE = "fii_dividends"
TICKERS_VIEW = "unique_tickers_view"

# The tickers view has to exist once in the database:
#
#   CREATE VIEW unique_tickers_view AS
#   SELECT DISTINCT ticker FROM b3_prices ORDER BY ticker;


class B3ServiceError(RuntimeError):
    pass


@dataclass
class PageResult:
    rows: List[Dict[str, Any]]
    total_count: int


def total_pages(total_count: int, page_size: int) -> int:
    if page_size <= 0:
        return 0
    return int(math.ceil(max(0, total_count) / page_size))


def _page_range(page: int, page_size: int) -> tuple:
    """1-based page -> inclusive (start, end) row offsets."""
    start = (max(1, int(page)) - 1) * int(page_size)
    return start, start + int(page_size) - 1


def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> Client:
    url = url or os.environ.get("SUPABASE_URL")
    key = key or os.environ.get("SUPABASE_ANON_KEY")
    if not url or not key:
        raise B3ServiceError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured")
    return create_client(url, key)


class B3Service:
    """Read-only queries over the B3 price / FII dividend tables."""

    def __init__(self, client: Optional[Client] = None):
        self.client = client if client is not None else create_supabase_client()

    def _fetch_page(self, table: str, ticker: str, page: int, page_size: int) -> PageResult:
        start, end = _page_range(page, page_size)
        try:
            resp = (
                self.client.table(table)
                .select("*", count="exact")
                .eq("ticker", ticker.upper())
                .order("trade_date", desc=True)
                .range(start, end)
                .execute()
            )
        except Exception:
            logger.error(f"Query on {table} failed for {ticker.upper()} (page {page})")
            raise
        return PageResult(rows=list(resp.data or []), total_count=int(resp.count or 0))

    def fetch_prices(self, ticker: str, page: int = 1, page_size: int = 50) -> PageResult:
        return self._fetch_page(PRICES_TABLE, ticker, page, page_size)

    def fetch_dividends(self, ticker: str, page: int = 1, page_size: int = 50) -> PageResult:
        return self._fetch_page(DIVIDENDS_TABLE, ticker, page, page_size)

    def fetch_unique_tickers(self) -> List[str]:
        try:
            resp = self.client.table(TICKERS_VIEW).select("ticker").execute()
        except Exception:
            logger.error(f"Could not read unique tickers. Does '{TICKERS_VIEW}' exist?")
            raise
        return [item["ticker"] for item in (resp.data or [])]

    def fetch_chart_series(self, ticker: str, months_back: int = 12, today: Optional[dt.date] = None) -> List[Dict[str, Any]]:
        """Price + dividend rows since `months_back` months ago, oldest first."""
        cutoff = _months_before(today or dt.date.today(), int(months_back))
        try:
            resp = (
                self.client.table(DIVIDENDS_TABLE)
                .select("trade_date, price_close, dividend_value, dividend_yield_month")
                .eq("ticker", ticker.upper())
                .gte("trade_date", cutoff.isoformat())
                .order("trade_date", desc=False)
                .execute()
            )
        except Exception:
            logger.error(f"Chart query failed for {ticker.upper()} ({months_back} months)")
            raise
        return list(resp.data or [])


def _months_before(d: dt.date, months: int) -> dt.date:
    y, m = divmod(d.year * 12 + (d.month - 1) - months, 12)
    m += 1
    # clamp day (e.g. 31/mar minus 1 month -> 28 or 29/fev)
    for day in (d.day, 30, 29, 28):
        try:
            return dt.date(y, m, day)
        except ValueError:
            continue


def pick_default_ticker(tickers: List[str], preferred: str) -> str:
    if preferred in tickers:
        return preferred
    return tickers[0] if tickers else ""


@dataclass
class HistoryView:
    page: PageResult
    series: List[Dict[str, Any]]
    chart_error: Optional[str] = None


def load_history_view(service: B3Service, ticker: str, page: int, page_size: int, months_back: int) -> HistoryView:
    """
    Dividend table page plus chart series. Table errors propagate; a chart
    failure is reported in `chart_error` and leaves an empty series.
    """
    page_data = service.fetch_dividends(ticker, page, page_size)
    try:
        series = service.fetch_chart_series(ticker, months_back)
    except Exception as ex:
        return HistoryView(page=page_data, series=[], chart_error=str(ex))
    return HistoryView(page=page_data, series=series)
