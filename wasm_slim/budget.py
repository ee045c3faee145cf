"""
Size budget evaluation.

check() is pure and total: any size against any (already validated) budget
yields a BudgetResult. Comparisons are strict, so a size exactly on a
threshold never trips the higher tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class SizeBudget:
    """Thresholds in KB; ordering target <= warn <= max is checked at load time."""

    max_kb: Optional[float] = None
    warn_kb: Optional[float] = None
    target_kb: Optional[float] = None

    def is_empty(self) -> bool:
        return self.max_kb is None and self.warn_kb is None and self.target_kb is None


class BudgetStatus(Enum):
    UNDER_TARGET = "under_target"
    ABOVE_TARGET = "above_target"
    WARNING = "warning"
    OVER_BUDGET = "over_budget"


@dataclass(frozen=True)
class BudgetResult:
    status: BudgetStatus
    size_kb: float
    message: str
    target_kb: Optional[float] = None
    warn_kb: Optional[float] = None
    max_kb: Optional[float] = None

    @property
    def passed(self) -> bool:
        return self.status is not BudgetStatus.OVER_BUDGET

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    @property
    def delta_kb(self) -> Optional[float]:
        """Signed distance to the tightest hard limit (max, else warn, else target)."""
        for limit in (self.max_kb, self.warn_kb, self.target_kb):
            if limit is not None:
                return self.size_kb - limit
        return None


def check(size_bytes: int, budget: SizeBudget) -> BudgetResult:
    """
    Evaluate an artifact size against a budget.

    Args:
        size_bytes: Artifact size in bytes
        budget: Thresholds in KB

    Returns:
        BudgetResult with status, message and echoed thresholds
    """
    size_kb = size_bytes / 1024.0

    def result(status: BudgetStatus, message: str) -> BudgetResult:
        return BudgetResult(
            status=status,
            size_kb=size_kb,
            message=message,
            target_kb=budget.target_kb,
            warn_kb=budget.warn_kb,
            max_kb=budget.max_kb,
        )

    if budget.max_kb is not None and size_kb > budget.max_kb:
        over = size_kb - budget.max_kb
        return result(BudgetStatus.OVER_BUDGET, f"FAILED: {over:.2f} KB over budget (optimization required)")

    if budget.warn_kb is not None and size_kb > budget.warn_kb:
        over = size_kb - budget.warn_kb
        return result(BudgetStatus.WARNING, f"Warning: {over:.2f} KB over threshold (consider optimizing)")

    if budget.target_kb is not None:
        if size_kb <= budget.target_kb:
            under = budget.target_kb - size_kb
            return result(BudgetStatus.UNDER_TARGET, f"Under target by {under:.2f} KB")
        above = size_kb - budget.target_kb
        return result(BudgetStatus.ABOVE_TARGET, f"Above target by {above:.2f} KB (still within limits)")

    if budget.max_kb is not None or budget.warn_kb is not None:
        return result(BudgetStatus.ABOVE_TARGET, "Size OK")

    return result(BudgetStatus.UNDER_TARGET, "Size OK")
