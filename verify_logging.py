import logging
from investment_simulation import run_reverse_impact
from investment_helpers import DEFAULTS

# Configure logging at the root level to capture solver output
logging.basicConfig(level=logging.INFO)

# Run the default reverse-impact scenario with month-by-month debug output
settings = DEFAULTS.copy()
settings["enable_debug_logging"] = True
settings["horizon_cap_months"] = 24  # Just two years for verification

print("Running reverse impact with logging enabled...")
result, rows = run_reverse_impact(settings)
print(f"\nSimulation complete. Ran for {len(rows)} months (converged={result.converged}).")
