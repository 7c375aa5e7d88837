"""Tests for the SQLite store using a temporary database file."""

from __future__ import annotations

import pytest

from kakeibo.exceptions import StoreError, ValidationError
from kakeibo.models import Budget, SavingsGoal, Transaction
from kakeibo.store import SQLiteStore

OWNER = "hanako@example.com"
OTHER = "taro@example.com"


@pytest.fixture
def store(tmp_path):
    return SQLiteStore(tmp_path / "kakeibo.db")


def test_transactions_newest_first(store) -> None:
    store.insert_transactions(OWNER, [
        Transaction("2024-01-05", 100, "expense", "食費"),
        Transaction("2024-01-20", 200, "expense", "食費"),
        Transaction("2024-01-10", 300, "income", "給与"),
    ])
    store.insert_transaction(OWNER, Transaction("2024-01-20", 400, "expense", "交通"))
    dates = [(t.date, t.amount) for t in store.list_transactions(OWNER)]
    assert dates == [("2024-01-20", 400), ("2024-01-20", 200), ("2024-01-10", 300), ("2024-01-05", 100)]


def test_owner_scoping(store) -> None:
    saved = store.insert_transaction(OWNER, Transaction("2024-01-05", 100, "expense", "食費"))
    store.insert_category(OTHER, "食費")
    assert store.list_transactions(OTHER) == []
    assert store.list_categories(OWNER) == []
    assert store.delete_transaction(OTHER, saved.id) is False
    assert store.delete_transaction(OWNER, saved.id) is True


def test_missing_owner_is_rejected(store) -> None:
    with pytest.raises(ValidationError):
        store.list_transactions("")


def test_duplicate_category_raises_store_error(store) -> None:
    store.insert_categories(OWNER, ["食費", "交通"])
    with pytest.raises(StoreError):
        store.insert_category(OWNER, "食費")
    assert [c.name for c in store.list_categories(OWNER)] == ["食費", "交通"]


def test_upsert_budget_updates_in_place(store) -> None:
    store.upsert_budget(OWNER, "2024-01", "食費", 30000)
    store.upsert_budget(OWNER, "2024-01", "食費", 25000)
    budgets = store.list_budgets(OWNER, "2024-01")
    assert [(b.category, b.amount) for b in budgets] == [("食費", 25000)]


def test_rename_category_cascades(store) -> None:
    store.insert_categories(OWNER, ["食費", "交通"])
    store.insert_transactions(OWNER, [
        Transaction("2024-01-05", 100, "expense", "食費"),
        Transaction("2024-01-06", 200, "expense", "食費"),
        Transaction("2024-01-07", 300, "expense", "交通"),
    ])
    store.upsert_budget(OWNER, "2024-01", "食費", 30000)

    updated = store.rename_category(OWNER, "食費", "食料品")

    assert updated == 2
    assert [c.name for c in store.list_categories(OWNER)] == ["食料品", "交通"]
    assert store.count_transactions_by_category(OWNER, "食料品") == 2
    assert store.count_transactions_by_category(OWNER, "食費") == 0
    assert [b.category for b in store.list_budgets(OWNER, "2024-01")] == ["食料品"]


def test_delete_category_removes_budgets_in_every_month(store) -> None:
    store.insert_categories(OWNER, ["食費", "交通"])
    store.upsert_budgets(OWNER, [
        Budget("2024-01", "食費", 100),
        Budget("2024-02", "食費", 100),
        Budget("2024-02", "交通", 50),
    ])
    store.delete_category(OWNER, "食費")
    assert [(b.month, b.category) for b in store.list_all_budgets(OWNER)] == [("2024-02", "交通")]


def test_replace_budgets_is_full_replacement(store) -> None:
    store.upsert_budgets(OWNER, [Budget("2024-02", "食費", 100), Budget("2024-02", "娯楽", 50)])
    count = store.replace_budgets(OWNER, "2024-02", [("交通", 70)])
    assert count == 1
    assert [(b.category, b.amount) for b in store.list_budgets(OWNER, "2024-02")] == [("交通", 70)]


def test_replace_budgets_failure_keeps_old_rows(store) -> None:
    store.upsert_budgets(OWNER, [Budget("2024-02", "食費", 100)])
    with pytest.raises(StoreError):
        # the second row violates UNIQUE(owner, month, category)
        store.replace_budgets(OWNER, "2024-02", [("交通", 70), ("交通", 80)])
    assert [(b.category, b.amount) for b in store.list_budgets(OWNER, "2024-02")] == [("食費", 100)]


def test_delete_budgets_by_category(store) -> None:
    store.upsert_budgets(OWNER, [Budget("2024-02", "食費", 100), Budget("2024-02", "娯楽", 50)])
    assert store.delete_budgets(OWNER, "2024-02", "娯楽") == 1
    assert store.delete_budgets(OWNER, "2024-02") == 1


def test_goals_crud(store) -> None:
    goal_id = store.insert_goal(OWNER, SavingsGoal("旅行", 100000))
    assert store.update_goal_progress(OWNER, goal_id, 30000)
    goals = store.list_goals(OWNER)
    assert [(g.name, g.current_amount) for g in goals] == [("旅行", 30000)]
    assert store.delete_goal(OWNER, goal_id)
    assert store.list_goals(OWNER) == []


def test_integer_overflow_is_wrapped_as_store_error(store) -> None:
    store.upsert_budgets(OWNER, [Budget("2024-02", "食費", 100)])
    with pytest.raises(StoreError):
        store.replace_budgets(OWNER, "2024-02", [("交通", 2**63)])
    assert [(b.category, b.amount) for b in store.list_budgets(OWNER, "2024-02")] == [("食費", 100)]


def test_import_records_is_atomic(store) -> None:
    store.insert_categories(OWNER, ["食費"])
    with pytest.raises(StoreError):
        # "食費" already exists, so the category insert violates UNIQUE(owner, name)
        store.import_records(
            OWNER,
            new_categories=["新規", "食費"],
            transactions=[Transaction("2024-01-05", 100, "expense", "新規")],
        )
    assert [c.name for c in store.list_categories(OWNER)] == ["食費"]
    assert store.list_transactions(OWNER) == []

    store.import_records(
        OWNER,
        new_categories=["新規"],
        transactions=[Transaction("2024-01-05", 100, "expense", "新規")],
        budgets=[Budget("2024-01", "新規", 500)],
    )
    assert [c.name for c in store.list_categories(OWNER)] == ["食費", "新規"]
    assert len(store.list_transactions(OWNER)) == 1
    assert [(b.category, b.amount) for b in store.list_budgets(OWNER, "2024-01")] == [("新規", 500)]
