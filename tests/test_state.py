"""Tests for the state transitions driven by user actions."""

from __future__ import annotations

import sqlite3
from datetime import date

import pytest

from kakeibo import csv_codec
from kakeibo import store as store_module
from kakeibo import state as st
from kakeibo.config import DEFAULT_CATEGORIES
from kakeibo.exceptions import StoreError
from kakeibo.models import ALL, Budget, Purpose
from kakeibo.rollover import RolloverFlags
from kakeibo.store import SQLiteStore

OWNER = "hanako@example.com"


@pytest.fixture
def store(tmp_path):
    return SQLiteStore(tmp_path / "kakeibo.db")


@pytest.fixture
def flags(tmp_path):
    return RolloverFlags(tmp_path / "flags.json")


@pytest.fixture
def signed_in(store, flags):
    state = st.initial_state(date(2024, 2, 10))
    return st.sign_in(state, store, OWNER, flags)


def _add(state, store, **kwargs):
    params = {"day": "2024-02-05", "amount": "1200", "txn_type": "expense", "category": "食費"}
    params.update(kwargs)
    return st.add_transaction(state, store, **params)


def test_sign_in_seeds_default_categories(signed_in) -> None:
    assert signed_in.month == "2024-02"
    assert signed_in.signed_in
    assert tuple(signed_in.categories) == DEFAULT_CATEGORIES
    assert signed_in.transactions == ()


def test_sign_in_requires_owner(store, flags) -> None:
    state = st.sign_in(st.initial_state(date(2024, 2, 10)), store, "  ", flags)
    assert not state.signed_in
    assert state.status


def test_sign_out_clears_owner_data(signed_in, store) -> None:
    state = _add(signed_in, store)
    cleared = st.sign_out(state)
    assert cleared.owner is None
    assert cleared.transactions == ()
    assert len(cleared.categories) == 0
    assert cleared.month == "2024-02"


def test_add_transaction_normalizes_amount(signed_in, store) -> None:
    state = _add(signed_in, store, amount="-1,200", purpose="waste", note=" ランチ ")
    assert state.status == ""
    txn = state.transactions[0]
    assert txn.amount == 1200
    assert txn.purpose is Purpose.WASTE
    assert txn.note == "ランチ"


def test_add_transaction_rejects_unknown_category(signed_in, store) -> None:
    state = _add(signed_in, store, category="宇宙旅行")
    assert state.transactions == ()
    assert "宇宙旅行" in state.status


def test_store_failure_keeps_previous_data(signed_in, store, monkeypatch) -> None:
    state = _add(signed_in, store)

    def boom(*args, **kwargs):
        raise StoreError("disk I/O error")

    monkeypatch.setattr(store, "insert_transaction", boom)
    failed = _add(state, store, amount="999")
    assert failed.transactions == state.transactions
    assert "disk I/O error" in failed.status


def test_delete_category_in_use_sets_notice(signed_in, store) -> None:
    state = _add(signed_in, store)
    state = st.delete_category(state, store, "食費")
    assert "食費" in state.categories
    assert state.notice == "このカテゴリは既に1件の明細で使われています。先に明細のカテゴリを変更してください。"
    assert st.dismiss_notice(state).notice is None


def test_delete_category_unused_removes_budgets(signed_in, store) -> None:
    state = st.save_budget(signed_in, store, "娯楽", "5000")
    state = st.delete_category(state, store, "娯楽")
    assert "娯楽" not in state.categories
    assert "娯楽" not in state.budgets
    assert store.list_budgets(OWNER, "2024-02") == []


def test_rename_category_updates_filter_and_budgets(signed_in, store) -> None:
    state = _add(signed_in, store)
    state = st.save_budget(state, store, "食費", "30000")
    state = st.set_filter(state, category="食費")
    state = st.rename_category(state, store, "食費", "食料品")
    assert state.filter.category == "食料品"
    assert state.budgets == {"食料品": 30000}
    assert state.transactions[0].category == "食料品"


@pytest.mark.parametrize("raw", ["-1", "abc", "inf", "nan"])
def test_save_budget_rejects_invalid_input(signed_in, store, raw) -> None:
    state = st.save_budget(signed_in, store, "食費", raw)
    assert state.status == "予算は0以上の数値で入力してください"
    assert state.budgets == {}


def test_save_budget_blank_is_ignored_and_fraction_floored(signed_in, store) -> None:
    assert st.save_budget(signed_in, store, "食費", "  ") is signed_in
    state = st.save_budget(signed_in, store, "食費", "1,234.9")
    assert state.budgets == {"食費": 1234}


def test_type_filter_resets_purpose_and_category(signed_in, store) -> None:
    state = _add(signed_in, store)
    state = st.set_filter(state, type="expense", purpose="waste", category="食費")
    assert (state.filter.purpose, state.filter.category) == ("waste", "食費")
    state = st.set_filter(state, type="income")
    assert state.filter.purpose == ALL
    assert state.filter.category == ALL


def test_select_month_offers_rollover(signed_in, store, flags) -> None:
    store.upsert_budgets(OWNER, [Budget("2024-02", "食費", 30000)])
    state = st.select_month(signed_in, store, "2024-03", flags)
    assert state.rollover_offer == "2024-02"
    state = st.accept_rollover_offer(state, store)
    assert state.budgets == {"食費": 30000}
    assert state.rollover_offer is None

    again = st.select_month(state, store, "2024-04", flags)
    again = st.decline_rollover_offer(again)
    assert st.select_month(again, store, "2024-04", flags).rollover_offer is None


def test_import_transactions_creates_missing_categories(signed_in, store) -> None:
    text = "日付,種別,分類,カテゴリ,メモ,金額\n2024-02-01,収入,収入,給与,,250000\n2024-02-02,支出,浪費,食費,,800\nbad,row"
    state = st.import_csv(signed_in, store, text, csv_codec.TRANSACTIONS)
    assert state.status == "2件を取り込みました（1件は形式エラーのためスキップ）"
    assert "給与" in state.categories
    assert len(state.transactions) == 2


def test_import_categories_without_new_names(signed_in, store) -> None:
    state = st.import_csv(signed_in, store, "カテゴリ\n食費\n交通", csv_codec.CATEGORIES)
    assert "新しいカテゴリはありません" in state.status


def test_import_wrong_header_reports_error(signed_in, store) -> None:
    state = st.import_csv(signed_in, store, "カテゴリ\n食費", csv_codec.BUDGETS)
    assert state.status.startswith("取り込みエラー")


def test_export_csv(signed_in, store) -> None:
    state = _add(signed_in, store)
    state = _add(state, store, day="2024-01-31")
    name, text = st.export_csv(state, store, csv_codec.TRANSACTIONS, scope="month")
    assert name == "kakeibo-transactions-2024-02.csv"
    assert len(text.split("\n")) == 2
    name, _ = st.export_csv(state, store, csv_codec.CATEGORIES)
    assert name == "kakeibo-categories.csv"


def test_derive_view(signed_in, store) -> None:
    state = _add(signed_in, store, amount="12000")
    state = _add(state, store, amount="50000", txn_type="income", category="その他")
    state = st.save_budget(state, store, "食費", "10000")
    view = st.derive_view(state, today=date(2024, 2, 10))
    assert view["totals"] == {"income": 50000, "expense": 12000, "balance": 38000}
    assert view["budget_chart"] == [{"name": "食費", "budget": 10000, "spent": 12000, "remaining": 0, "over": 2000}]
    assert view["budget_summary"].percent == 120
    assert view["budget_summary"].days_left == 19


def test_goals_lifecycle(signed_in, store) -> None:
    state = st.add_goal(signed_in, store, "旅行", "100000", "2024-12-31")
    goal = state.goals[0]
    state = st.update_goal_progress(state, store, goal.id, "40000")
    assert state.goals[0].current_amount == 40000
    state = st.delete_goal(state, store, goal.id)
    assert state.goals == ()
    assert "目標" in st.add_goal(state, store, "", "100").status


def test_oversized_amount_is_rejected(signed_in, store) -> None:
    state = _add(signed_in, store, amount="100000000000000000000")
    assert state.transactions == ()
    assert state.status.startswith("保存エラー")
    assert store.list_transactions(OWNER) == []


def test_oversized_budget_is_rejected(signed_in, store) -> None:
    state = st.save_budget(signed_in, store, "食費", "1e20")
    assert state.status == "予算は0以上の数値で入力してください"
    assert store.list_budgets(OWNER, "2024-02") == []


def test_import_drops_oversized_amount_rows(signed_in, store) -> None:
    text = "日付,種別,分類,カテゴリ,メモ,金額\n2024-02-01,支出,消費,新規,,100000000000000000000\n2024-02-02,支出,消費,食費,,800"
    state = st.import_csv(signed_in, store, text, csv_codec.TRANSACTIONS)
    assert state.status == "1件を取り込みました（1件は形式エラーのためスキップ）"
    assert "新規" not in state.categories


def test_failed_import_writes_nothing(signed_in, store, monkeypatch) -> None:
    def disk_full(*args, **kwargs):
        raise sqlite3.OperationalError("disk full")

    monkeypatch.setattr(store_module, "_insert_transaction_rows", disk_full)
    before = [c.name for c in store.list_categories(OWNER)]
    text = "日付,種別,分類,カテゴリ,メモ,金額\n2024-02-01,支出,消費,新規,,800"
    state = st.import_csv(signed_in, store, text, csv_codec.TRANSACTIONS)
    assert state.status == "取り込みエラー: disk full"
    assert [c.name for c in store.list_categories(OWNER)] == before
    assert "新規" not in state.categories
    assert store.list_transactions(OWNER) == []


def test_failed_budget_import_writes_nothing(signed_in, store, monkeypatch) -> None:
    def disk_full(*args, **kwargs):
        raise sqlite3.OperationalError("disk full")

    monkeypatch.setattr(store_module, "_upsert_budget_rows", disk_full)
    before = [c.name for c in store.list_categories(OWNER)]
    state = st.import_csv(signed_in, store, "月,カテゴリ,予算\n2024-02,新規,5000", csv_codec.BUDGETS)
    assert state.status.startswith("取り込みエラー")
    assert [c.name for c in store.list_categories(OWNER)] == before
    assert store.list_all_budgets(OWNER) == []


def test_failed_copy_keeps_budgets(signed_in, store, monkeypatch) -> None:
    store.upsert_budgets(OWNER, [Budget("2024-01", "食費", 30000)])
    state = st.save_budget(signed_in, store, "娯楽", "5000")

    def boom(*args, **kwargs):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "replace_budgets", boom)
    failed = st.copy_budgets_from(state, store, "2024-01")
    assert failed.budgets == {"娯楽": 5000}
    assert failed.status == "予算コピーエラー: disk full"
    assert {b.category: b.amount for b in store.list_budgets(OWNER, "2024-02")} == {"娯楽": 5000}


def test_set_filter_unknown_field_reports_status(signed_in) -> None:
    state = st.set_filter(signed_in, bogus=1)
    assert state.filter == signed_in.filter
    assert state.status.startswith("絞り込みエラー")


def test_set_filter_rejects_bad_date(signed_in) -> None:
    state = st.set_filter(signed_in, date_from="2024-02-30")
    assert state.filter.date_from == ""
    assert state.status.startswith("絞り込みエラー")
