#!/usr/bin/env python3
"""
mixlab Walkthrough — Media Mix Modeling from idealized curves to a budget plan.

Follows the primer end to end: a single channel with a known response
curve, two channels optimized for profit, a simulated history, a fitted
model, and a grid-search budget allocation compared to an even split.

Usage:
    python examples/walkthrough.py
"""

import numpy as np

from mixlab.data.samples import load_sample
from mixlab.mmm.models.base import ChannelResponseModel
from mixlab.mmm.models.log_linear import ResponseModelFitter
from mixlab.mmm.optimizer.grid_allocator import BudgetAllocator
from mixlab.mmm.transforms.response import (
    breakeven_spend,
    profit_curve,
    profit_maximizing_spend,
)

BASELINE = 500.0

# ── 1. One channel, known response ─────────────────────────────────
print("=" * 60)
print("  mixlab Walkthrough - Media Mix Modeling primer")
print("=" * 60)

print("\n--- One channel: revenue = 500 + 20 * ln(spend + 1) ---")
spend = np.arange(0, 101)
profit = profit_curve(spend, baseline=BASELINE, coefficient=20)
print(f"Profit-maximizing spend (calculus):  {profit_maximizing_spend(20):.0f}")
print(f"Profit-maximizing spend (grid):      {spend[np.argmax(profit)]}")
print(f"Profit at the peak:                  {profit.max():,.2f}")
print(f"Spend beyond which profit < baseline: {breakeven_spend(20):.1f}")

# ── 2. Two channels, profit objective ──────────────────────────────
print("\n--- Two channels: A (c=20) and B (c=5), profit objective ---")
truth = ChannelResponseModel(baseline=BASELINE, coefficients={"A": 20.0, "B": 5.0})
allocator = BudgetAllocator(truth)

best_profit = allocator.optimize(
    total_budget=200,
    objective="maximize_profit",
    exhaust_budget=False,
    constraints={"A": {"max": 100}, "B": {"max": 100}},
)
print(f"Best spend: A={best_profit.allocation['A']:.0f}, B={best_profit.allocation['B']:.0f}")
print(f"Profit: {best_profit.expected_profit:,.2f}")

# ── 3. A simulated history ─────────────────────────────────────────
print("\n--- Simulated weekly history ---")
df = load_sample("two_channel")
print(f"{len(df)} weeks, columns: {', '.join(df.columns)}")
print(df.head().to_string(index=False))

# ── 4. Fit the model ───────────────────────────────────────────────
print("\n--- Fitting revenue = baseline + cA*ln(A+1) + cB*ln(B+1) ---")
result = ResponseModelFitter().fit(df, channels=["A", "B"], target="revenue")
print(f"{'Term':<10} {'Estimate':>10} {'Std. err':>10} {'Truth':>8}")
print("-" * 41)
print(f"{'baseline':<10} {result.model.baseline:>10.2f} {result.std_errors['baseline']:>10.2f} {BASELINE:>8.1f}")
for ch, coef in result.model.coefficients.items():
    print(f"{ch:<10} {coef:>10.2f} {result.std_errors[ch]:>10.2f} {truth.coefficients[ch]:>8.1f}")
print(f"R-squared: {result.r_squared:.3f}")

# ── 5. Allocate a fixed budget ─────────────────────────────────────
print("\n--- Allocating a budget of 100 to maximize revenue ---")
fitted = BudgetAllocator(result.model)
even = fitted.even_split(100)
plan = fitted.optimize(total_budget=100, step=1, current_allocation=even)

print(f"{'Channel':<10} {'Even split':>12} {'Optimized':>12}")
print("-" * 36)
for ch in plan.allocation:
    print(f"{ch:<10} {even[ch]:>12.0f} {plan.allocation[ch]:>12.0f}")
print(f"\nPredicted revenue, even split: {plan.previous_outcome:,.2f}")
print(f"Predicted revenue, optimized:  {plan.expected_outcome:,.2f}")
print(f"Lift: {plan.expected_lift:+,.2f} ({plan.expected_lift_pct:+.2f}%)")

# ── 6. Summary ─────────────────────────────────────────────────────
print("\n" + "=" * 60)
print("  Done! Next steps:")
print("  - `mixlab simulate --output data.csv`")
print("  - `mixlab fit --data data.csv --channels A,B --output model.yaml`")
print("  - `mixlab optimize --model model.yaml --budget 100 --compare-even`")
print("  Grid search grows exponentially with channels; use --strategy slsqp")
print("  beyond two or three.")
print("=" * 60)
