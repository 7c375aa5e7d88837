"""Unit tests for kakeibo.models."""

from __future__ import annotations

import pytest

from kakeibo.exceptions import ValidationError
from kakeibo.models import (
    MAX_AMOUNT,
    Budget,
    CategoryRegistry,
    Purpose,
    SavingsGoal,
    Transaction,
    TransactionType,
    is_iso_date,
    is_month_key,
    parse_amount,
)


def test_parse_amount_normalizes() -> None:
    assert parse_amount("-1,200") == 1200
    assert parse_amount("¥3,000") == 3000
    assert parse_amount("500円") == 500
    assert parse_amount(12.9) == 12


@pytest.mark.parametrize("raw", [None, "", "abc", float("nan"), float("inf"), True])
def test_parse_amount_rejects(raw) -> None:
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_transaction_income_forces_consumption() -> None:
    txn = Transaction("2024-01-25", -250000, "income", "給与", purpose="waste", note="  bonus  ")
    assert txn.amount == 250000
    assert txn.type is TransactionType.INCOME
    assert txn.purpose is Purpose.CONSUMPTION
    assert txn.note == "bonus"
    assert txn.month == "2024-01"
    assert txn.is_income and not txn.is_expense


def test_transaction_unknown_purpose_defaults_to_consumption() -> None:
    txn = Transaction("2024-01-05", 100, "expense", "食費", purpose=None)
    assert txn.purpose is Purpose.CONSUMPTION


def test_date_and_month_checks() -> None:
    assert is_iso_date("2024-02-29")
    assert not is_iso_date("2023-02-29")
    assert not is_iso_date("2024-2-1")
    assert is_month_key("2024-12")
    assert not is_month_key("2024-13")
    assert not is_month_key("2024-1")


def test_budget_validation() -> None:
    assert Budget("2024-01", "食費", 1000.0).amount == 1000
    with pytest.raises(ValidationError):
        Budget("2024-1", "食費", 1000)
    with pytest.raises(ValidationError):
        Budget("2024-01", "食費", -1)


def test_savings_goal_validation() -> None:
    goal = SavingsGoal(" 旅行 ", "100,000", due_date="2025-03-31")
    assert goal.name == "旅行"
    assert goal.target_amount == 100000
    with pytest.raises(ValidationError):
        SavingsGoal("", 1000)
    with pytest.raises(ValidationError):
        SavingsGoal("旅行", 0)
    with pytest.raises(ValidationError):
        SavingsGoal("旅行", 1000, due_date="来年")


def test_category_registry_operations() -> None:
    registry = CategoryRegistry.from_names(["食費", " 交通 ", "食費", ""])
    assert registry.names == ("食費", "交通")
    assert registry.require(" 交通 ") == "交通"

    registry = registry.add("娯楽")
    assert list(registry) == ["食費", "交通", "娯楽"]
    assert registry.rename("交通", "移動").names == ("食費", "移動", "娯楽")
    assert "交通" not in registry.remove("交通")

    with pytest.raises(ValidationError):
        registry.add("食費")
    with pytest.raises(ValidationError):
        registry.rename("交通", "娯楽")
    with pytest.raises(ValidationError):
        registry.require("医療")


def test_amounts_beyond_integer_column_range_are_rejected() -> None:
    assert parse_amount(MAX_AMOUNT) == MAX_AMOUNT
    with pytest.raises(ValidationError):
        parse_amount("100000000000000000000")
    with pytest.raises(ValidationError):
        parse_amount(MAX_AMOUNT + 1)
    with pytest.raises(ValidationError):
        Budget("2024-01", "食費", MAX_AMOUNT + 1)
    with pytest.raises(ValidationError):
        SavingsGoal("旅行", "1e20")


def test_note_line_breaks_become_spaces() -> None:
    txn = Transaction("2024-01-05", 100, "expense", "食費", note="一行目\r\n二行目\n")
    assert txn.note == "一行目 二行目"
