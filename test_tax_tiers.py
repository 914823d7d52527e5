import math
import unittest
from investment_helpers import (
    InvalidParameter,
    parse_tax_tiers,
    resolve_tax_rate,
    months_to_days,
    vehicle_annual_rate,
    to_effective_period_rate,
    to_simple_horizon_return,
    format_brl,
    format_brl_compact,
    format_dividend,
    format_duration_pt,
    parse_horizons,
)


class TestTaxTiers(unittest.TestCase):
    def test_tier_boundaries_are_inclusive(self):
        self.assertEqual(resolve_tax_rate(0), 0.225)
        self.assertEqual(resolve_tax_rate(180), 0.225)
        self.assertEqual(resolve_tax_rate(181), 0.20)
        self.assertEqual(resolve_tax_rate(360), 0.20)
        self.assertEqual(resolve_tax_rate(361), 0.175)
        self.assertEqual(resolve_tax_rate(720), 0.175)
        self.assertEqual(resolve_tax_rate(721), 0.15)
        self.assertEqual(resolve_tax_rate(10_000), 0.15)

    def test_fractional_days_from_months(self):
        """Month counts go through the 365.25/12 average month."""
        # 5 months = 152.2 days, 6 months = 182.6 days
        self.assertEqual(resolve_tax_rate(months_to_days(5)), 0.225)
        self.assertEqual(resolve_tax_rate(months_to_days(6)), 0.20)
        # 12 months = 365.25 days -> past the 360 boundary
        self.assertEqual(resolve_tax_rate(months_to_days(11)), 0.20)
        self.assertEqual(resolve_tax_rate(months_to_days(12)), 0.175)
        self.assertEqual(resolve_tax_rate(months_to_days(24)), 0.15)

    def test_custom_tiers_are_sorted(self):
        tiers = parse_tax_tiers("[[100, 0.3], [10, 0.5]]")
        self.assertEqual(tiers, [(10.0, 0.5), (100.0, 0.3)])
        self.assertEqual(resolve_tax_rate(10, tiers, 0.1), 0.5)
        self.assertEqual(resolve_tax_rate(11, tiers, 0.1), 0.3)
        self.assertEqual(resolve_tax_rate(101, tiers, 0.1), 0.1)

    def test_malformed_tiers(self):
        with self.assertRaises(InvalidParameter) as ctx:
            parse_tax_tiers("not json")
        self.assertEqual(ctx.exception.field, "tax_tiers_json")

    def test_non_finite_tier_rate(self):
        with self.assertRaises(InvalidParameter) as ctx:
            parse_tax_tiers([[180, float("nan")], [360, 0.2]])
        self.assertEqual(ctx.exception.field, "tax_tiers_json")

    def test_malformed_horizons(self):
        with self.assertRaises(InvalidParameter) as ctx:
            parse_horizons("[[180]]")
        self.assertEqual(ctx.exception.field, "comparison_horizons_json")

        with self.assertRaises(InvalidParameter) as ctx:
            parse_horizons("not json")
        self.assertEqual(ctx.exception.field, "comparison_horizons_json")


class TestRateConversion(unittest.TestCase):
    def test_vehicle_rate_from_benchmark(self):
        # 110% of a 14.9% CDI = 16.39% a.a.
        self.assertAlmostEqual(vehicle_annual_rate(14.9, 110), 16.39)
        self.assertAlmostEqual(vehicle_annual_rate(14.9, 95), 14.155)

    def test_effective_rate_round_trip(self):
        for r in (0.0, 4.5, 14.155, 16.39, 100.0, -3.0):
            for n in (1, 2, 12, 252, 365):
                eff = to_effective_period_rate(r, n)
                self.assertAlmostEqual((1 + eff) ** n - 1, r / 100.0, places=9)

    def test_effective_rate_is_compound_not_simple(self):
        # 12% a.a. -> ~0.9489% a.m., less than the simple 1%
        monthly = to_effective_period_rate(12.0, 12)
        self.assertAlmostEqual(monthly, 1.12 ** (1 / 12) - 1)
        self.assertLess(monthly, 0.01)

    def test_simple_horizon_return(self):
        # 10000 at 10% for 2 years = 12000 (no compounding)
        self.assertAlmostEqual(to_simple_horizon_return(10000, 10.0, 2), 12000.0)
        self.assertAlmostEqual(to_simple_horizon_return(0, 10.0, 2), 0.0)
        self.assertAlmostEqual(to_simple_horizon_return(-1000, 10.0, 1), -1100.0)

    def test_negative_rates_are_allowed(self):
        self.assertLess(to_effective_period_rate(-5.0, 12), 0.0)

    def test_rate_below_minus_100_is_rejected(self):
        # 1 + r/100 < 0 has no real monthly equivalent
        with self.assertRaises(InvalidParameter) as ctx:
            to_effective_period_rate(-150.0, 12)
        self.assertEqual(ctx.exception.field, "annual_rate_pct")
        # exactly -100% wipes out the balance but is still real
        self.assertEqual(to_effective_period_rate(-100.0, 12), -1.0)

    def test_invalid_inputs_name_the_field(self):
        with self.assertRaises(InvalidParameter) as ctx:
            to_effective_period_rate(10.0, 0)
        self.assertEqual(ctx.exception.field, "periods_per_year")

        with self.assertRaises(InvalidParameter) as ctx:
            to_effective_period_rate(float("nan"), 12)
        self.assertEqual(ctx.exception.field, "annual_rate_pct")

        with self.assertRaises(InvalidParameter) as ctx:
            to_simple_horizon_return(math.inf, 10.0, 1)
        self.assertEqual(ctx.exception.field, "principal")


class TestFormatting(unittest.TestCase):
    def test_brl(self):
        self.assertEqual(format_brl(1234.5), "R$ 1.234,50")
        self.assertEqual(format_brl(1234567.891), "R$ 1.234.567,89")
        self.assertEqual(format_brl(-10), "-R$ 10,00")
        self.assertEqual(format_brl(0), "R$ 0,00")

    def test_brl_compact(self):
        self.assertEqual(format_brl_compact(0), "R$ 0")
        self.assertEqual(format_brl_compact(500), "R$ 500")
        self.assertEqual(format_brl_compact(7500), "R$ 7,5k")
        self.assertEqual(format_brl_compact(10000), "R$ 10k")
        self.assertEqual(format_brl_compact(1200000), "R$ 1,2M")

    def test_dividend_keeps_at_least_four_decimals(self):
        self.assertEqual(format_dividend(0.85), "R$ 0,8500")
        self.assertEqual(format_dividend(0.123456), "R$ 0,123456")

    def test_duration(self):
        self.assertEqual(format_duration_pt(1, 1), "1 ano e 1 mês")
        self.assertEqual(format_duration_pt(2, 0), "2 anos e 0 meses")

    def test_horizons(self):
        self.assertEqual(parse_horizons()[0], (180, "6 meses"))
        self.assertEqual(parse_horizons([90, [30, "1 mês"]]), [(90, "90 dias"), (30, "1 mês")])


if __name__ == "__main__":
    unittest.main()
