import copy
import datetime as dt
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Tuple, Union

from investment_helpers import (
    DEFAULTS,
    DAYS_PER_YEAR_SIMPLE,
    InvalidParameter,
    require_finite,
    parse_tax_tiers,
    parse_horizons,
    resolve_tax_rate,
    months_to_days,
    vehicle_annual_rate,
    to_effective_period_rate,
    to_simple_horizon_return,
    maturity_date,
    format_pt_date,
)

TAXED_LABEL = "CDB"
EXEMPT_LABEL = "LCI/LCA"


def _merge_settings(settings_input: Optional[Dict]) -> Dict:
    s = copy.deepcopy(DEFAULTS)
    if isinstance(settings_input, dict):
        s.update(settings_input)
    return s


# ===================================================
# Rentability comparison (fixed horizons, simple interest)
# ===================================================
@dataclass(frozen=True)
class ComparisonRow:
    label: str
    days: int
    maturity: dt.date
    tax_rate: float

    exempt_total: float
    exempt_profit: float

    taxed_gross_profit: float
    taxed_tax_paid: float
    taxed_net_profit: float
    taxed_net_total: float

    difference: float
    better_option: str

    def as_row(self) -> Dict:
        return {
            "Prazo": f"{self.label} ({format_pt_date(self.maturity)})",
            "Dias": self.days,
            "Alíquota IR (CDB)": self.tax_rate,
            "LCI/LCA Total": self.exempt_total,
            "LCI/LCA Lucro": self.exempt_profit,
            "CDB Lucro Bruto": self.taxed_gross_profit,
            "CDB Imposto": self.taxed_tax_paid,
            "CDB Lucro Líquido": self.taxed_net_profit,
            "CDB Total Líquido": self.taxed_net_total,
            "Diferença Líquida": self.difference,
            "Melhor Opção": self.better_option,
        }


def compare_rentability(
    principal: float,
    exempt_rate_pct: float,
    taxed_rate_pct: float,
    horizons: Optional[List[Tuple[int, str]]] = None,
    tiers: Optional[list] = None,
    terminal_rate: Optional[float] = None,
    start_date: Optional[dt.date] = None,
) -> List[ComparisonRow]:
    """
    One row per horizon. The exempt vehicle keeps all of its simple-interest profit;
    the taxed vehicle pays the IR tier for exactly `days` on its gross profit.
    Ties go to the taxed vehicle (strict `>` on net totals).
    """
    principal = require_finite("principal", principal)
    exempt_rate_pct = require_finite("exempt_rate_pct", exempt_rate_pct)
    taxed_rate_pct = require_finite("taxed_rate_pct", taxed_rate_pct)
    if horizons is None:
        horizons = parse_horizons()
    start_date = start_date or dt.date.today()

    rows: List[ComparisonRow] = []
    for days, label in horizons:
        years = days / DAYS_PER_YEAR_SIMPLE

        exempt_total = to_simple_horizon_return(principal, exempt_rate_pct, years)
        exempt_profit = exempt_total - principal

        taxed_gross_total = to_simple_horizon_return(principal, taxed_rate_pct, years)
        taxed_gross_profit = taxed_gross_total - principal

        tax_rate = resolve_tax_rate(days, tiers, terminal_rate)
        tax_paid = taxed_gross_profit * tax_rate
        taxed_net_profit = taxed_gross_profit - tax_paid
        taxed_net_total = principal + taxed_net_profit

        better = EXEMPT_LABEL if exempt_total > taxed_net_total else TAXED_LABEL

        rows.append(
            ComparisonRow(
                label=label,
                days=int(days),
                maturity=maturity_date(days, start_date),
                tax_rate=tax_rate,
                exempt_total=exempt_total,
                exempt_profit=exempt_profit,
                taxed_gross_profit=taxed_gross_profit,
                taxed_tax_paid=tax_paid,
                taxed_net_profit=taxed_net_profit,
                taxed_net_total=taxed_net_total,
                difference=abs(taxed_net_total - exempt_total),
                better_option=better,
            )
        )
    return rows


def run_rentability_comparison(settings_input: Optional[Dict] = None, start_date: Optional[dt.date] = None) -> List[ComparisonRow]:
    """Comparison driven by the settings dict (rates given as % of the benchmark)."""
    s = _merge_settings(settings_input)
    benchmark = require_finite("benchmark_rate_pct", s["benchmark_rate_pct"])
    exempt_mult = require_finite("exempt_multiplier_pct", s["exempt_multiplier_pct"])
    taxed_mult = require_finite("taxed_multiplier_pct", s["taxed_multiplier_pct"])
    return compare_rentability(
        principal=s["comparison_amount"],
        exempt_rate_pct=vehicle_annual_rate(benchmark, exempt_mult),
        taxed_rate_pct=vehicle_annual_rate(benchmark, taxed_mult),
        horizons=parse_horizons(s["comparison_horizons_json"]),
        tiers=parse_tax_tiers(s["tax_tiers_json"]),
        terminal_rate=require_finite("tax_terminal_rate", s["tax_terminal_rate"]),
        start_date=start_date,
    )


# ===================================================
# Reverse impact (month-by-month compounding)
# ===================================================
@dataclass(frozen=True)
class ReverseImpactConfig:
    target_difference: float
    initial_capital: float
    monthly_contribution: float
    benchmark_rate_pct: float
    exempt_multiplier_pct: float
    taxed_multiplier_pct: float
    horizon_cap_months: int = 360

    @classmethod
    def from_settings(cls, s: Dict) -> "ReverseImpactConfig":
        cap = require_finite("horizon_cap_months", s.get("horizon_cap_months", 360))
        if cap < 1 or cap != int(cap):
            raise InvalidParameter("horizon_cap_months", cap, "must be a positive whole number of months")
        return cls(
            target_difference=require_finite("target_difference", s["target_difference"]),
            initial_capital=require_finite("initial_capital", s["initial_capital"]),
            monthly_contribution=require_finite("monthly_contribution", s["monthly_contribution"]),
            benchmark_rate_pct=require_finite("benchmark_rate_pct", s["benchmark_rate_pct"]),
            exempt_multiplier_pct=require_finite("exempt_multiplier_pct", s["exempt_multiplier_pct"]),
            taxed_multiplier_pct=require_finite("taxed_multiplier_pct", s["taxed_multiplier_pct"]),
            horizon_cap_months=int(cap),
        )


@dataclass
class SimulationState:
    period_index: int
    exempt_value: float
    taxed_value: float        # gross, before IR
    taxed_principal: float    # cumulative contributions into the taxed vehicle
    taxed_net_value: float = 0.0
    tax_rate: float = 0.0
    tax_paid: float = 0.0
    difference: float = 0.0


@dataclass(frozen=True)
class ImpactSuccess:
    periods: int
    years: int
    remainder_periods: int
    final_value_a: float
    final_value_net_b: float
    final_difference: float
    converged: bool = field(default=True, init=False)


@dataclass(frozen=True)
class ImpactFailure:
    cap_periods: int
    cap_years: int
    best_difference: float
    final_difference: float
    final_value_a: float
    final_value_net_b: float
    converged: bool = field(default=False, init=False)


ImpactResult = Union[ImpactSuccess, ImpactFailure]


class ReverseImpactSolver:
    """
    Finds how many months of contributions it takes for the net gap between an
    exempt vehicle (LCI/LCA) and a taxed one (CDB) to reach a target amount.
    """

    def __init__(self, settings_input: Optional[Dict] = None):
        self.s = _merge_settings(settings_input)

        self.logger = logging.getLogger("ReverseImpactSolver")
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        self.logger.setLevel(logging.INFO)
        if self.s.get("enable_debug_logging"):
            self.logger.setLevel(logging.DEBUG)

        self.config = ReverseImpactConfig.from_settings(self.s)

        self.tiers = parse_tax_tiers(self.s["tax_tiers_json"])
        self.terminal_rate = require_finite("tax_terminal_rate", self.s["tax_terminal_rate"])

        cfg = self.config
        self.rate_a = to_effective_period_rate(vehicle_annual_rate(cfg.benchmark_rate_pct, cfg.exempt_multiplier_pct), 12)
        self.rate_b = to_effective_period_rate(vehicle_annual_rate(cfg.benchmark_rate_pct, cfg.taxed_multiplier_pct), 12)

        self.rows: List[Dict] = []

    def _apply_month(self, state: SimulationState) -> None:
        # contribution lands at the start of every month but the first
        if state.period_index > 0:
            c = self.config.monthly_contribution
            state.exempt_value += c
            state.taxed_value += c
            state.taxed_principal += c

        state.exempt_value *= 1.0 + self.rate_a
        state.taxed_value *= 1.0 + self.rate_b
        state.period_index += 1

        gross_profit = state.taxed_value - state.taxed_principal
        state.tax_rate = resolve_tax_rate(months_to_days(state.period_index), self.tiers, self.terminal_rate)
        state.tax_paid = gross_profit * state.tax_rate
        state.taxed_net_value = state.taxed_value - state.tax_paid
        state.difference = abs(state.exempt_value - state.taxed_net_value)

    def _record_row(self, state: SimulationState) -> None:
        self.rows.append({
            "Mês": state.period_index,
            "LCI/LCA Valor": state.exempt_value,
            "CDB Bruto": state.taxed_value,
            "CDB Aportado": state.taxed_principal,
            "CDB Lucro Bruto": state.taxed_value - state.taxed_principal,
            "Alíquota IR": state.tax_rate,
            "CDB Imposto": state.tax_paid,
            "CDB Líquido": state.taxed_net_value,
            "Diferença": state.difference,
        })

    def run(self) -> ImpactResult:
        cfg = self.config
        self.rows = []
        state = SimulationState(
            period_index=0,
            exempt_value=cfg.initial_capital,
            taxed_value=cfg.initial_capital,
            taxed_principal=cfg.initial_capital,
            taxed_net_value=cfg.initial_capital,
        )
        best_difference = 0.0

        self.logger.debug(
            f"Monthly rates: LCI/LCA={self.rate_a:.6%}, CDB={self.rate_b:.6%} "
            f"(target {cfg.target_difference:,.2f}, cap {cfg.horizon_cap_months} months)"
        )

        while state.difference < cfg.target_difference and state.period_index < cfg.horizon_cap_months:
            self._apply_month(state)
            best_difference = max(best_difference, state.difference)
            self._record_row(state)
            self.logger.debug(
                f"Month {state.period_index}: LCI/LCA={state.exempt_value:,.2f} "
                f"CDB net={state.taxed_net_value:,.2f} (IR {state.tax_rate:.1%}) diff={state.difference:,.2f}"
            )

        if state.period_index >= cfg.horizon_cap_months and state.difference < cfg.target_difference:
            self.logger.info(
                f"Target {cfg.target_difference:,.2f} not reached in {cfg.horizon_cap_months} months; "
                f"best difference {best_difference:,.2f}"
            )
            return ImpactFailure(
                cap_periods=cfg.horizon_cap_months,
                cap_years=cfg.horizon_cap_months // 12,
                best_difference=best_difference,
                final_difference=state.difference,
                final_value_a=state.exempt_value,
                final_value_net_b=state.taxed_net_value,
            )

        self.logger.info(
            f"Target {cfg.target_difference:,.2f} reached after {state.period_index} months "
            f"(difference {state.difference:,.2f})"
        )
        return ImpactSuccess(
            periods=state.period_index,
            years=state.period_index // 12,
            remainder_periods=state.period_index % 12,
            final_value_a=state.exempt_value,
            final_value_net_b=state.taxed_net_value,
            final_difference=state.difference,
        )


def run_reverse_impact(settings_input: Optional[Dict] = None) -> Tuple[ImpactResult, List[Dict]]:
    """
    Entry point used by the app.

    Settings read (see DEFAULTS):
      - "target_difference", "initial_capital", "monthly_contribution"
      - "benchmark_rate_pct", "exempt_multiplier_pct", "taxed_multiplier_pct"
      - "horizon_cap_months" (default 360), "tax_tiers_json", "tax_terminal_rate"

    Returns the result (check `.converged`) and the month-by-month rows.
    """
    solver = ReverseImpactSolver(settings_input)
    result = solver.run()
    return result, solver.rows


def result_as_dict(result: ImpactResult) -> Dict:
    return asdict(result)
