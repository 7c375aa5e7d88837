"""Budget evaluation for a selected month.

This module provides functions for totalling budgets under the active
filter, measuring spend against them, computing the days left in the
month and building the per-category rows used by the budget charts.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .aggregation import TransactionLike, transactions_frame
from .filters import Filter
from .models import ALL, TransactionType, month_key


@dataclass(frozen=True)
class BudgetSummary:
    budget_total: int
    expense_total: int
    remaining: int
    percent: int
    days_left: int

    @property
    def is_over(self) -> bool:
        return self.remaining < 0


def round_half_up(value: Union[float, Decimal]) -> int:
    """Round to the nearest integer with ties away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def budget_total(budgets: Mapping[str, int], flt: Optional[Filter] = None) -> int:
    """Sum the budgets that apply under ``flt``.

    Budgets never apply to income, a concrete category filter narrows the
    sum to that single category, and otherwise every budgeted category
    counts.
    """
    flt = flt or Filter()
    if flt.type == TransactionType.INCOME.value:
        return 0
    if flt.category != ALL:
        return int(budgets.get(flt.category, 0) or 0)
    return int(sum(int(amount or 0) for amount in budgets.values()))


def expense_total(items: Iterable[TransactionLike]) -> int:
    frame = transactions_frame(items)
    return int(frame.loc[frame["type"] == TransactionType.EXPENSE.value, "amount"].sum())


def percent_used(spent: int, budget: int) -> int:
    """Percentage of ``budget`` consumed by ``spent``; 0 without a budget."""
    if budget <= 0:
        return 0
    return round_half_up(Decimal(spent) * 100 / Decimal(budget))


def days_in_month(month: str) -> int:
    year, mon = (int(part) for part in month.split("-"))
    return calendar.monthrange(year, mon)[1]


def days_left(month: str, today: Optional[date] = None) -> int:
    """Days remaining in ``month``; 0 unless it is the current month."""
    today = today or date.today()
    if month != month_key(today):
        return 0
    return max(0, days_in_month(month) - today.day)


def evaluate(
    budgets: Mapping[str, int],
    items: Iterable[TransactionLike],
    flt: Optional[Filter],
    month: str,
    today: Optional[date] = None,
) -> BudgetSummary:
    """Summarise budget utilisation for already filtered month items."""
    total = budget_total(budgets, flt)
    spent = expense_total(items)
    return BudgetSummary(
        budget_total=total,
        expense_total=spent,
        remaining=total - spent,
        percent=percent_used(spent, total),
        days_left=days_left(month, today),
    )


def budget_chart_data(
    categories: Iterable[str],
    budgets: Mapping[str, int],
    spend: Mapping[str, int],
) -> List[Dict[str, int]]:
    """Build per-category budget vs spend rows for the budget chart.

    Rows where both budget and spend are zero are suppressed.

    Example:
        >>> budget_chart_data(["食費"], {"食費": 10000}, {"食費": 12000})
        [{'name': '食費', 'budget': 10000, 'spent': 12000, 'remaining': 0, 'over': 2000}]
    """
    rows = []
    for name in categories:
        budget = int(budgets.get(name, 0) or 0)
        spent = int(spend.get(name, 0) or 0)
        if budget <= 0 and spent <= 0:
            continue
        rows.append({
            "name": name,
            "budget": budget,
            "spent": spent,
            "remaining": max(budget - spent, 0),
            "over": max(spent - budget, 0),
        })
    return rows


def category_budget_status(
    categories: Iterable[str],
    budgets: Mapping[str, int],
    spend: Mapping[str, int],
) -> List[Dict[str, object]]:
    """Signed remaining budget for every category, for the budget editor.

    Unlike the chart rows nothing is suppressed and ``remaining`` may be
    negative; ``is_over`` flags the overspent categories.
    """
    status = []
    for name in categories:
        budget = int(budgets.get(name, 0) or 0)
        spent = int(spend.get(name, 0) or 0)
        remaining = budget - spent
        status.append({
            "name": name,
            "budget": budget,
            "spent": spent,
            "remaining": remaining,
            "is_over": remaining < 0,
            "percent": percent_used(spent, budget),
        })
    return status
