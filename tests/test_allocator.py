"""Tests for BudgetAllocator — grid search over the budget simplex."""

import numpy as np
import pytest

from mixlab.mmm.errors import EmptyChannelSet, NoFeasibleAllocation, UnknownChannel
from mixlab.mmm.models.base import ChannelResponseModel, Objective
from mixlab.mmm.optimizer.grid_allocator import BudgetAllocator, simplex_grid


@pytest.fixture()
def two_channel() -> ChannelResponseModel:
    return ChannelResponseModel(baseline=500.0, coefficients={"A": 20.0, "B": 5.0})


@pytest.fixture()
def allocator(two_channel) -> BudgetAllocator:
    return BudgetAllocator(two_channel)


class TestSimplexGrid:
    def test_exhaust_two_channels(self):
        grid = simplex_grid(3, lower=[0, 0], upper=[3, 3], exhaust=True)
        np.testing.assert_array_equal(grid, [[0, 3], [1, 2], [2, 1], [3, 0]])

    def test_up_to_budget_two_channels(self):
        grid = simplex_grid(2, lower=[0, 0], upper=[2, 2], exhaust=False)
        np.testing.assert_array_equal(grid, [[0, 0], [0, 1], [0, 2], [1, 0], [1, 1], [2, 0]])

    def test_three_channel_count_and_order(self):
        grid = simplex_grid(10, lower=[0, 0, 0], upper=[10, 10, 10], exhaust=True)
        assert len(grid) == 66
        assert np.all(grid.sum(axis=1) == 10)
        rows = [tuple(r) for r in grid]
        assert rows == sorted(rows)

    def test_up_to_budget_is_lexicographic(self):
        grid = simplex_grid(6, lower=[0, 0, 0], upper=[6, 6, 6], exhaust=False)
        rows = [tuple(r) for r in grid]
        assert rows == sorted(rows)
        assert np.all(grid.sum(axis=1) <= 6)
        assert len(grid) == 84

    def test_single_channel(self):
        np.testing.assert_array_equal(simplex_grid(4, [0], [4], exhaust=True), [[4]])
        assert len(simplex_grid(4, [0], [4], exhaust=False)) == 5

    def test_bounds_narrow_grid(self):
        grid = simplex_grid(10, lower=[2, 0], upper=[4, 10], exhaust=True)
        np.testing.assert_array_equal(grid, [[2, 8], [3, 7], [4, 6]])

    def test_infeasible_bounds(self):
        grid = simplex_grid(10, lower=[6, 6], upper=[10, 10], exhaust=True)
        assert grid.shape == (0, 2)


class TestKnownScenarios:
    """Worked examples from the primer."""

    def test_single_channel_profit_peak(self):
        model = ChannelResponseModel(baseline=500.0, coefficients={"A": 20.0})
        allocator = BudgetAllocator(model)
        result = allocator.optimize(
            total_budget=100, step=1, objective="maximize_profit", exhaust_budget=False
        )
        assert result.allocation == {"A": 19.0}
        assert result.expected_profit == pytest.approx(500 + 20 * np.log(20) - 19)
        assert not result.tie

    def test_single_channel_profit_falls_below_baseline(self):
        model = ChannelResponseModel(baseline=500.0, coefficients={"A": 20.0})
        allocator = BudgetAllocator(model)
        assert allocator.evaluate({"A": 90}, Objective.MAXIMIZE_PROFIT) > 500
        for spend in (91, 95, 100):
            assert allocator.evaluate({"A": spend}, Objective.MAXIMIZE_PROFIT) < 500

    def test_two_channel_unconstrained_profit(self, allocator):
        result = allocator.optimize(
            total_budget=200,
            step=1,
            objective="maximize_profit",
            exhaust_budget=False,
            constraints={"A": {"max": 100}, "B": {"max": 100}},
        )
        assert result.allocation == {"A": 19.0, "B": 4.0}
        assert result.expected_profit == pytest.approx(545.0, abs=0.1)

    def test_two_channel_budget_beats_even_split(self, allocator):
        even = allocator.even_split(100)
        result = allocator.optimize(
            total_budget=100,
            step=1,
            objective=Objective.MAXIMIZE_OUTCOME,
            exhaust_budget=True,
            current_allocation=even,
        )
        assert result.allocation == {"A": 81.0, "B": 19.0}
        assert result.expected_outcome == pytest.approx(603.11, abs=0.01)
        assert result.previous_outcome == pytest.approx(598.30, abs=0.01)
        assert result.expected_lift > 0
        assert result.expected_lift_pct == pytest.approx(
            result.expected_lift / result.previous_outcome * 100
        )


class TestBudgetProperties:
    @pytest.mark.parametrize("budget,step", [(0, 1), (7, 1), (100, 1), (100, 5), (10, 0.5)])
    def test_exhaust_spends_whole_budget(self, allocator, budget, step):
        result = allocator.optimize(total_budget=budget, step=step, exhaust_budget=True)
        assert result.total_spend == budget

    @pytest.mark.parametrize("budget,step", [(0.3, 0.1), (0.7, 0.1), (0.9, 0.3), (1.5, 0.25)])
    def test_exhaust_with_fractional_step(self, allocator, budget, step):
        result = allocator.optimize(total_budget=budget, step=step, exhaust_budget=True)
        assert result.total_spend == budget
        for spend in result.allocation.values():
            assert spend == round(spend, 2)
            assert spend / step == pytest.approx(round(spend / step))

    @pytest.mark.parametrize("objective", ["maximize_outcome", "maximize_profit"])
    def test_up_to_budget_never_overspends(self, allocator, objective):
        result = allocator.optimize(
            total_budget=37, step=1, objective=objective, exhaust_budget=False
        )
        assert result.total_spend <= 37

    @pytest.mark.parametrize("objective", ["maximize_outcome", "maximize_profit"])
    @pytest.mark.parametrize("exhaust", [True, False])
    def test_zero_budget(self, allocator, objective, exhaust):
        result = allocator.optimize(
            total_budget=0, step=1, objective=objective, exhaust_budget=exhaust
        )
        assert result.allocation == {"A": 0.0, "B": 0.0}
        assert result.expected_outcome == 500.0
        assert result.expected_profit == 500.0

    def test_more_coefficient_never_less_spend(self):
        shares = []
        for coef_a in (1.0, 2.0, 5.0, 10.0, 20.0, 40.0):
            model = ChannelResponseModel(baseline=100.0, coefficients={"A": coef_a, "B": 5.0})
            result = BudgetAllocator(model).optimize(total_budget=50, step=1)
            shares.append(result.allocation["A"] / result.total_spend)
        assert shares == sorted(shares)

    def test_idempotent(self, allocator):
        first = allocator.optimize(total_budget=100, step=1, objective="maximize_profit")
        second = allocator.optimize(total_budget=100, step=1, objective="maximize_profit")
        assert first.allocation == second.allocation
        assert first.expected_outcome == second.expected_outcome
        assert first.tie == second.tie

    def test_profit_objective_with_exhaust(self, allocator):
        # Spending everything is forced, so the split matches the revenue optimum.
        profit = allocator.optimize(total_budget=100, step=1, objective="maximize_profit")
        outcome = allocator.optimize(total_budget=100, step=1, objective="maximize_outcome")
        assert profit.allocation == outcome.allocation
        assert profit.expected_profit == pytest.approx(profit.expected_outcome - 100)


class TestTieBreaking:
    def test_flat_response_picks_lexicographic_first(self):
        model = ChannelResponseModel(baseline=100.0, coefficients={"A": 0.0, "B": 0.0})
        result = BudgetAllocator(model).optimize(total_budget=10, step=1, exhaust_budget=True)
        assert result.allocation == {"A": 0.0, "B": 10.0}
        assert result.tie
        assert result.n_ties == 11
        assert result.tied_allocations[0] == result.allocation

    def test_flat_response_up_to_budget(self):
        model = ChannelResponseModel(baseline=100.0, coefficients={"A": 0.0, "B": 0.0})
        result = BudgetAllocator(model).optimize(total_budget=10, step=1, exhaust_budget=False)
        assert result.allocation == {"A": 0.0, "B": 0.0}
        assert result.n_ties == 66
        assert len(result.tied_allocations) == 10

    def test_flat_response_profit_has_unique_best(self):
        model = ChannelResponseModel(baseline=100.0, coefficients={"A": 0.0, "B": 0.0})
        result = BudgetAllocator(model).optimize(
            total_budget=10, step=1, objective="maximize_profit", exhaust_budget=False
        )
        assert result.allocation == {"A": 0.0, "B": 0.0}
        assert not result.tie
        assert result.n_ties == 1

    @pytest.mark.parametrize("budget", [23, 31, 35])
    def test_three_symmetric_channels_tie(self, budget):
        model = ChannelResponseModel(baseline=0.0, coefficients={"A": 7.3, "B": 7.3, "C": 7.3})
        result = BudgetAllocator(model).optimize(total_budget=budget, step=1, exhaust_budget=True)
        low, rem = divmod(budget, 3)
        expected = [low] * (3 - rem) + [low + 1] * rem
        assert list(result.allocation.values()) == expected
        assert result.tie
        assert result.n_ties == 3


class TestChannelsAndConstraints:
    def test_channel_subset(self, allocator):
        result = allocator.optimize(total_budget=10, step=1, channels=["B"])
        assert result.allocation == {"B": 10.0}
        assert result.expected_outcome == pytest.approx(500 + 5 * np.log(11))

    def test_minimum_spend_binds(self, allocator):
        result = allocator.optimize(total_budget=100, step=1, constraints={"A": {"min": 90}})
        assert result.allocation == {"A": 90.0, "B": 10.0}

    def test_infeasible_constraints(self, allocator):
        with pytest.raises(NoFeasibleAllocation):
            allocator.optimize(
                total_budget=100, step=1, constraints={"A": {"min": 60}, "B": {"min": 60}}
            )

    def test_unknown_channel(self, allocator):
        with pytest.raises(UnknownChannel):
            allocator.optimize(total_budget=10, channels=["A", "C"])

    def test_unknown_constraint_channel(self, allocator):
        with pytest.raises(UnknownChannel):
            allocator.optimize(total_budget=10, constraints={"C": {"max": 5}})

    def test_empty_channel_set(self, allocator):
        with pytest.raises(EmptyChannelSet):
            allocator.optimize(total_budget=10, channels=[])


class TestInputValidation:
    def test_step_must_divide_budget(self, allocator):
        with pytest.raises(NoFeasibleAllocation):
            allocator.optimize(total_budget=10, step=3, exhaust_budget=True)

    def test_step_need_not_divide_when_not_exhausting(self, allocator):
        result = allocator.optimize(total_budget=10, step=3, exhaust_budget=False)
        assert result.total_spend == 9.0

    def test_negative_budget(self, allocator):
        with pytest.raises(ValueError):
            allocator.optimize(total_budget=-1)

    def test_non_positive_step(self, allocator):
        with pytest.raises(ValueError):
            allocator.optimize(total_budget=10, step=0)

    def test_unknown_objective(self, allocator):
        with pytest.raises(ValueError, match="Unsupported objective"):
            allocator.optimize(total_budget=10, objective="maximize_roas")

    def test_unknown_strategy(self, allocator):
        with pytest.raises(ValueError, match="Unknown strategy"):
            allocator.optimize(total_budget=10, strategy="anneal")


class TestContinuousFallback:
    @pytest.fixture()
    def three_channel(self) -> ChannelResponseModel:
        return ChannelResponseModel(baseline=0.0, coefficients={"A": 20.0, "B": 10.0, "C": 5.0})

    def test_grid_optimum(self, three_channel):
        result = BudgetAllocator(three_channel).optimize(total_budget=60, step=1)
        assert result.allocation == {"A": 35.0, "B": 17.0, "C": 8.0}

    def test_slsqp_agrees_with_grid(self, three_channel):
        result = BudgetAllocator(three_channel).optimize(total_budget=60, strategy="slsqp")
        assert result.strategy == "slsqp"
        assert result.total_spend == pytest.approx(60, abs=1e-4)
        for ch, expected in {"A": 35.0, "B": 17.0, "C": 8.0}.items():
            assert result.allocation[ch] == pytest.approx(expected, abs=0.5)

    def test_slsqp_profit_without_exhaust(self, two_channel):
        result = BudgetAllocator(two_channel).optimize(
            total_budget=200,
            objective="maximize_profit",
            exhaust_budget=False,
            strategy="slsqp",
        )
        assert result.allocation["A"] == pytest.approx(19.0, abs=0.5)
        assert result.allocation["B"] == pytest.approx(4.0, abs=0.5)

    def test_auto_switches_above_limit(self, three_channel):
        allocator = BudgetAllocator(three_channel, max_grid_channels=2)
        result = allocator.optimize(total_budget=60, strategy="auto")
        assert result.strategy == "slsqp"
        assert not result.tie

    def test_auto_keeps_grid_within_limit(self, three_channel):
        result = BudgetAllocator(three_channel).optimize(total_budget=60, strategy="auto")
        assert result.strategy == "grid"


class TestResultRecord:
    def test_to_dict_is_plain_data(self, allocator):
        result = allocator.optimize(total_budget=100, step=1, objective="maximize_profit")
        data = result.to_dict()
        assert data["allocation"] == {"A": 81.0, "B": 19.0}
        assert data["objective"] == "maximize_profit"
        assert data["total_spend"] == 100.0
        assert data["tie"] is False
        assert data["strategy"] == "grid"
        assert result.n_candidates == 101
