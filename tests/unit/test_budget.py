"""Size budget evaluation."""

import pytest

from wasm_slim.budget import BudgetStatus, SizeBudget, check

KB = 1024
BUDGET = SizeBudget(max_kb=1000, warn_kb=800, target_kb=500)


@pytest.mark.parametrize(
    "size_kb, status",
    [
        (400, BudgetStatus.UNDER_TARGET),
        (500, BudgetStatus.UNDER_TARGET),
        (600, BudgetStatus.ABOVE_TARGET),
        (800, BudgetStatus.ABOVE_TARGET),
        (900, BudgetStatus.WARNING),
        (1000, BudgetStatus.WARNING),
        (1100, BudgetStatus.OVER_BUDGET),
    ],
)
def test_status_tiers(size_kb, status) -> None:
    assert check(size_kb * KB, BUDGET).status is status


def test_messages() -> None:
    assert check(400 * KB, BUDGET).message == "Under target by 100.00 KB"
    assert check(600 * KB, BUDGET).message == "Above target by 100.00 KB (still within limits)"
    assert check(900 * KB, BUDGET).message == "Warning: 100.00 KB over threshold (consider optimizing)"
    assert check(1100 * KB, BUDGET).message == "FAILED: 100.00 KB over budget (optimization required)"


def test_only_over_budget_fails() -> None:
    """Warnings still pass; exceeding max exits non-zero."""
    warning = check(900 * KB, BUDGET)
    assert warning.passed and warning.exit_code == 0

    over = check(1100 * KB, BUDGET)
    assert not over.passed
    assert over.exit_code == 1
    assert over.delta_kb == pytest.approx(100.0)


def test_thresholds_echoed() -> None:
    result = check(123 * KB, BUDGET)
    assert (result.target_kb, result.warn_kb, result.max_kb) == (500, 800, 1000)
    assert result.size_kb == pytest.approx(123.0)


def test_partial_budgets() -> None:
    assert check(10 * KB, SizeBudget()).status is BudgetStatus.UNDER_TARGET
    assert check(10 * KB, SizeBudget()).message == "Size OK"

    max_only = check(10 * KB, SizeBudget(max_kb=100))
    assert max_only.status is BudgetStatus.ABOVE_TARGET
    assert max_only.message == "Size OK"
    assert max_only.delta_kb == pytest.approx(-90.0)

    assert check(200 * KB, SizeBudget(max_kb=100)).status is BudgetStatus.OVER_BUDGET
    assert check(200 * KB, SizeBudget(warn_kb=100)).status is BudgetStatus.WARNING
