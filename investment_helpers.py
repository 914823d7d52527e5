import json
import math
import datetime as dt
from functools import lru_cache
from typing import Any, List, Optional, Tuple


# ==========================================================
# DEFAULTS
# ==========================================================
DEFAULTS = {
    # ======================
    # Benchmark / vehicles
    # ======================
    "benchmark_rate_pct": 14.9,         # CDI annual %
    "exempt_multiplier_pct": 95.0,      # LCI/LCA as % of CDI
    "taxed_multiplier_pct": 110.0,      # CDB as % of CDI

    # ======================
    # Rentability comparison
    # ======================
    "comparison_amount": 10000.0,
    "comparison_horizons_json": (
        '[[180, "6 meses"], [360, "1 ano"], [720, "2 anos"], [1080, "3 anos"]]'
    ),

    # ======================
    # Reverse impact
    # ======================
    "target_difference": 2000.0,
    "initial_capital": 8000.0,
    "monthly_contribution": 2500.0,
    "horizon_cap_months": 360,          # 30 years

    # ----------------------
    # Regressive income tax (IR) on fixed income
    # [max_days_inclusive, rate]; anything longer pays the terminal rate
    # ----------------------
    "tax_tiers_json": "[[180, 0.225], [360, 0.20], [720, 0.175]]",
    "tax_terminal_rate": 0.15,

    # ======================
    # FII history
    # ======================
    "history_page_size": 50,
    "history_months_back": 12,
    "history_default_ticker": "BPFF11",

    # Debug / Dev
    "enable_debug_logging": False,
}

DAYS_PER_MONTH = 365.25 / 12
DAYS_PER_YEAR_SIMPLE = 365.0

PT_MONTHS_SHORT = ["jan", "fev", "mar", "abr", "mai", "jun", "jul", "ago", "set", "out", "nov", "dez"]


class InvalidParameter(ValueError):
    """Raised when a numeric input cannot produce a meaningful result."""

    def __init__(self, field: str, value: Any, reason: str = "must be a finite number"):
        self.field = field
        self.value = value
        super().__init__(f"{field} {reason} (got {value!r})")


def require_finite(field: str, value: Any) -> float:
    try:
        x = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(field, value) from None
    if not math.isfinite(x):
        raise InvalidParameter(field, value)
    return x


def require_positive(field: str, value: Any) -> float:
    x = require_finite(field, value)
    if x <= 0:
        raise InvalidParameter(field, value, "must be greater than zero")
    return x


# ==========================================================
# 1) Tax tiers (regressive IR)
# ==========================================================

def _normalize_tiers_input(tiers: Any) -> str:
    """
    Convert tiers input into a deterministic JSON string so it can be cached safely.
    Accepts a JSON string or a list/tuple of (max_days, rate) pairs.
    """
    if tiers is None:
        return "[]"
    if isinstance(tiers, (list, tuple)):
        return json.dumps([[float(d), float(r)] for d, r in tiers], separators=(",", ":"))
    s = str(tiers).strip()
    return s if s else "[]"


@lru_cache(maxsize=64)
def _parse_tiers_cached(tiers_key: str) -> Tuple[Tuple[float, float], ...]:
    try:
        data = json.loads(tiers_key)
        out = [(float(days), float(rate)) for days, rate in data]
    except (TypeError, ValueError) as ex:
        raise InvalidParameter("tax_tiers_json", tiers_key, f"is not a list of [days, rate] pairs ({ex})") from ex
    for days, rate in out:
        if not (math.isfinite(days) and math.isfinite(rate)):
            raise InvalidParameter("tax_tiers_json", tiers_key, "must hold finite days and rates")
    out.sort(key=lambda x: x[0])
    return tuple(out)


def parse_tax_tiers(tiers_input: Any = None) -> List[Tuple[float, float]]:
    """
    Returns the bounded tiers sorted ascending by max_days_inclusive.
    Falls back to the default IR table when nothing is given.
    """
    if tiers_input is None:
        tiers_input = DEFAULTS["tax_tiers_json"]
    return list(_parse_tiers_cached(_normalize_tiers_input(tiers_input)))


_DEFAULT_TIERS = tuple(parse_tax_tiers())


def resolve_tax_rate(elapsed_days: float, tiers: Optional[list] = None, terminal_rate: Optional[float] = None) -> float:
    """Regressive IR rate for a holding of `elapsed_days` (upper bounds inclusive)."""
    table = _DEFAULT_TIERS if tiers is None else tiers
    for max_days, rate in table:
        if elapsed_days <= max_days:
            return rate
    return DEFAULTS["tax_terminal_rate"] if terminal_rate is None else terminal_rate


def months_to_days(months: int) -> float:
    """Average-calendar days elapsed after `months` whole months."""
    return months * DAYS_PER_MONTH


# ==========================================================
# 2) Rate conversion
# ==========================================================

def vehicle_annual_rate(benchmark_rate_pct: float, multiplier_pct: float) -> float:
    """Annual % of a vehicle paying `multiplier_pct` of the benchmark."""
    return (float(multiplier_pct) / 100.0) * float(benchmark_rate_pct)


def to_effective_period_rate(annual_rate_pct: float, periods_per_year: float) -> float:
    """
    Compound conversion of an annual % into the equivalent per-period rate.
    Example: 12% a.a. over 12 periods -> (1.12)^(1/12) - 1 ~= 0.9489% a.m.
    """
    r = require_finite("annual_rate_pct", annual_rate_pct)
    n = require_positive("periods_per_year", periods_per_year)
    if 1.0 + r / 100.0 < 0:
        # negative base has no real fractional root
        raise InvalidParameter("annual_rate_pct", r, "must be greater than -100")
    return (1.0 + r / 100.0) ** (1.0 / n) - 1.0


def to_simple_horizon_return(principal: float, annual_rate_pct: float, years: float) -> float:
    """Linear (simple-interest) projection of `principal` after `years`."""
    p = require_finite("principal", principal)
    r = require_finite("annual_rate_pct", annual_rate_pct)
    y = require_finite("years", years)
    return p * (1.0 + (r / 100.0) * y)


# ==========================================================
# 3) Presentation helpers (BRL)
# ==========================================================

def _pt_number(value: float, decimals: int) -> str:
    # 1234567.891 -> "1.234.567,89"
    s = f"{abs(value):,.{decimals}f}"
    return s.replace(",", "_").replace(".", ",").replace("_", ".")


def format_brl(value: float, decimals: int = 2) -> str:
    value = float(value)
    sign = "-" if value < 0 and round(abs(value), decimals) > 0 else ""
    return f"{sign}R$ {_pt_number(value, decimals)}"


def format_brl_compact(value: float) -> str:
    """Short axis label: 10000 -> 'R$ 10k', 7500 -> 'R$ 7,5k', 1200000 -> 'R$ 1,2M'."""
    value = float(value)
    if value == 0:
        return "R$ 0"

    def _one_decimal(x: float) -> str:
        s = _pt_number(x, 1)
        return s[:-2] if s.endswith(",0") else s

    sign = "-" if value < 0 else ""
    if abs(value) >= 1_000_000:
        return f"{sign}R$ {_one_decimal(value / 1_000_000)}M"
    if abs(value) >= 1000:
        return f"{sign}R$ {_one_decimal(value / 1000)}k"
    return format_brl(value, 0)


def format_dividend(value: float) -> str:
    """Dividends per share keep 4 to 6 decimals."""
    s = _pt_number(float(value), 6)
    whole, frac = s.split(",")
    frac = frac.rstrip("0").ljust(4, "0")
    sign = "-" if float(value) < 0 else ""
    return f"{sign}R$ {whole},{frac}"


def format_pt_date(d: dt.date) -> str:
    return f"{d.day:02d}/{PT_MONTHS_SHORT[d.month - 1]}/{d.year}"


def maturity_date(days: int, start: Optional[dt.date] = None) -> dt.date:
    start = start or dt.date.today()
    return start + dt.timedelta(days=int(days))


def format_duration_pt(years: int, months: int) -> str:
    y_word = "ano" if years == 1 else "anos"
    m_word = "mês" if months == 1 else "meses"
    return f"{years} {y_word} e {months} {m_word}"


def parse_horizons(horizons_input: Any = None) -> List[Tuple[int, str]]:
    """Horizon table as [(days, label), ...] in the order given."""
    if horizons_input is None:
        horizons_input = DEFAULTS["comparison_horizons_json"]
    out = []
    try:
        data = json.loads(horizons_input) if isinstance(horizons_input, str) else horizons_input
        for item in data:
            if isinstance(item, (list, tuple)):
                days, label = item
            else:
                days, label = item, f"{int(item)} dias"
            out.append((int(days), str(label)))
    except (TypeError, ValueError) as ex:
        raise InvalidParameter("comparison_horizons_json", horizons_input, f"is not a list of [days, label] pairs ({ex})") from ex
    return out
