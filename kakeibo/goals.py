"""Savings goal progress."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from .budgets import percent_used
from .models import SavingsGoal


def progress_ratio(goal: SavingsGoal) -> float:
    """Share of the target reached, capped at 1.0 for progress bars."""
    if goal.target_amount <= 0:
        return 0.0
    return min(goal.current_amount / goal.target_amount, 1.0)


def goal_progress(goal: SavingsGoal, today: Optional[date] = None) -> Dict[str, Any]:
    """Summarise how far a goal has come.

    ``days_until_due`` is None without a due date and negative once the
    due date has passed.
    """
    today = today or date.today()
    days_until_due = None
    if goal.due_date:
        days_until_due = (date.fromisoformat(goal.due_date) - today).days
    return {
        "name": goal.name,
        "target_amount": goal.target_amount,
        "current_amount": goal.current_amount,
        "remaining": max(goal.target_amount - goal.current_amount, 0),
        "percent": percent_used(goal.current_amount, goal.target_amount),
        "achieved": goal.current_amount >= goal.target_amount,
        "days_until_due": days_until_due,
    }
