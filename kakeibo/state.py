"""Application state and the transitions that user actions trigger.

The whole UI state lives in one immutable :class:`AppState`. Each user
action maps to one function taking the current state (plus the store and
the action's arguments) and returning the next state. Store failures and
rejected input never raise out of a transition: the previous data is kept
and ``status`` carries the message to show.

Filter invariants are restored by :func:`~kakeibo.filters.normalize_filter`
at the end of every transition that changes the type filter, the category
list or the transactions.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, Optional, Tuple

from . import aggregation as agg
from . import budgets as bud
from . import csv_codec
from . import rollover
from .config import DEFAULT_CATEGORIES
from .exceptions import CategoryInUseError, KakeiboError, ValidationError
from .filters import Filter, apply_filter, category_options, normalize_filter
from .models import (
    MAX_AMOUNT,
    CategoryRegistry,
    Purpose,
    SavingsGoal,
    Transaction,
    TransactionType,
    is_iso_date,
    is_month_key,
    month_key,
    parse_amount,
)
from .store import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppState:
    month: str
    owner: Optional[str] = None
    transactions: Tuple[Transaction, ...] = ()
    categories: CategoryRegistry = field(default_factory=CategoryRegistry)
    budgets: Dict[str, int] = field(default_factory=dict)
    goals: Tuple[SavingsGoal, ...] = ()
    filter: Filter = field(default_factory=Filter)
    status: str = ""
    notice: Optional[str] = None
    rollover_offer: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return bool(self.owner)


def initial_state(today: Optional[date] = None) -> AppState:
    return AppState(month=month_key(today or date.today()))


def _fail(state: AppState, prefix: str, exc: Exception) -> AppState:
    logger.warning("%s: %s", prefix, exc)
    return replace(state, status=f"{prefix}: {exc}")


def _normalized(state: AppState) -> AppState:
    return replace(state, filter=normalize_filter(state.filter, state.categories, state.transactions))


# ---------------------------------------------------------------------------
# Session and loading
# ---------------------------------------------------------------------------


def sign_in(
    state: AppState,
    store: SQLiteStore,
    owner: str,
    flags: rollover.RolloverFlags,
) -> AppState:
    """Session became present: load everything for ``owner``."""
    owner = (owner or "").strip()
    if not owner:
        return replace(state, status="メールアドレスを入力してください")
    return load_all(replace(state, owner=owner, status=""), store, flags)


def sign_out(state: AppState) -> AppState:
    """Session became absent: drop every piece of owner data."""
    return AppState(month=state.month)


def load_all(state: AppState, store: SQLiteStore, flags: rollover.RolloverFlags) -> AppState:
    state = load_transactions(state, store)
    state = load_categories(state, store)
    state = load_goals(state, store)
    return load_budgets(state, store, flags)


def load_transactions(state: AppState, store: SQLiteStore) -> AppState:
    try:
        transactions = tuple(store.list_transactions(state.owner))
    except KakeiboError as exc:
        return _fail(state, "読み込みエラー", exc)
    return _normalized(replace(state, transactions=transactions))


def load_categories(state: AppState, store: SQLiteStore) -> AppState:
    """Load categories, seeding the defaults for an owner with none."""
    try:
        names = [c.name for c in store.list_categories(state.owner)]
        if not names:
            store.insert_categories(state.owner, DEFAULT_CATEGORIES)
            names = [c.name for c in store.list_categories(state.owner)]
    except KakeiboError as exc:
        return _fail(state, "カテゴリ読み込みエラー", exc)
    return _normalized(replace(state, categories=CategoryRegistry.from_names(names)))


def load_goals(state: AppState, store: SQLiteStore) -> AppState:
    try:
        goals = tuple(store.list_goals(state.owner))
    except KakeiboError as exc:
        return _fail(state, "目標読み込みエラー", exc)
    return replace(state, goals=goals)


def load_budgets(state: AppState, store: SQLiteStore, flags: rollover.RolloverFlags) -> AppState:
    """Load the selected month's budgets and run the rollover check."""
    try:
        rows = store.list_budgets(state.owner, state.month)
    except KakeiboError as exc:
        return _fail(state, "予算読み込みエラー", exc)
    budgets = {b.category: b.amount for b in rows}
    offer = None
    if not budgets:
        try:
            offer = rollover.rollover_candidate(store, state.owner, state.month, flags)
        except KakeiboError as exc:
            return _fail(replace(state, budgets=budgets), "予算読み込みエラー", exc)
    return replace(state, budgets=budgets, rollover_offer=offer)


def select_month(
    state: AppState,
    store: SQLiteStore,
    month: str,
    flags: rollover.RolloverFlags,
) -> AppState:
    if not is_month_key(month):
        return replace(state, status=f"月の形式が正しくありません: {month}")
    return load_budgets(replace(state, month=month, rollover_offer=None), store, flags)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def set_filter(state: AppState, **changes: Any) -> AppState:
    """Change one or more filter fields and restore the filter invariants."""
    try:
        flt = replace(state.filter, **changes)
    except (ValidationError, TypeError) as exc:
        return _fail(state, "絞り込みエラー", exc)
    return _normalized(replace(state, filter=flt))


def reset_filter(state: AppState) -> AppState:
    return replace(state, filter=Filter())


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def add_transaction(
    state: AppState,
    store: SQLiteStore,
    *,
    day: str,
    amount: Any,
    txn_type: str = TransactionType.EXPENSE.value,
    purpose: str = Purpose.CONSUMPTION.value,
    category: str = "",
    note: str = "",
) -> AppState:
    try:
        if not is_iso_date(day):
            raise ValidationError("日付が正しくありません")
        txn = Transaction(
            date=day,
            amount=parse_amount(amount),
            type=txn_type,
            purpose=purpose,
            category=state.categories.require(category),
            note=note,
        )
        store.insert_transaction(state.owner, txn)
    except (KakeiboError, ValueError) as exc:
        return _fail(state, "保存エラー", exc)
    return load_transactions(replace(state, status=""), store)


def delete_transaction(state: AppState, store: SQLiteStore, transaction_id: int) -> AppState:
    try:
        store.delete_transaction(state.owner, transaction_id)
    except KakeiboError as exc:
        return _fail(state, "削除エラー", exc)
    return load_transactions(state, store)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def add_category(state: AppState, store: SQLiteStore, name: str) -> AppState:
    try:
        registry = state.categories.add(name)
        store.insert_category(state.owner, registry.names[-1])
    except KakeiboError as exc:
        return _fail(state, "カテゴリ追加エラー", exc)
    return load_categories(state, store)


def rename_category(state: AppState, store: SQLiteStore, old: str, new: str) -> AppState:
    """Rename a category; transactions and budgets follow the new name."""
    cleaned = (new or "").strip()
    if not cleaned or cleaned == old:
        return state
    try:
        registry = state.categories.rename(old, cleaned)
        store.rename_category(state.owner, old, cleaned)
    except KakeiboError as exc:
        return _fail(state, "カテゴリ更新エラー", exc)
    budgets = {cleaned if k == old else k: v for k, v in state.budgets.items()}
    flt = state.filter
    if flt.category == old:
        flt = replace(flt, category=cleaned)
    state = replace(state, categories=registry, budgets=budgets, filter=flt)
    state = load_transactions(state, store)
    return load_categories(state, store)


def delete_category(state: AppState, store: SQLiteStore, name: str) -> AppState:
    """Delete an unused category and its budgets.

    A category still used by transactions is not deleted; ``notice`` asks
    the user to reassign those transactions first.
    """
    try:
        count = store.count_transactions_by_category(state.owner, name)
        if count > 0:
            raise CategoryInUseError(name, count)
        store.delete_category(state.owner, name)
    except CategoryInUseError as exc:
        return replace(
            state,
            notice=f"このカテゴリは既に{exc.count}件の明細で使われています。先に明細のカテゴリを変更してください。",
        )
    except KakeiboError as exc:
        return _fail(state, "カテゴリ削除エラー", exc)
    budgets = {k: v for k, v in state.budgets.items() if k != name}
    state = replace(state, categories=state.categories.remove(name), budgets=budgets, notice=None)
    return load_categories(state, store)


def dismiss_notice(state: AppState) -> AppState:
    return replace(state, notice=None)


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


def save_budget(state: AppState, store: SQLiteStore, category: str, raw: Any) -> AppState:
    """Upsert one category budget for the selected month.

    Blank input is ignored; fractions are floored.
    """
    if raw is None or str(raw).strip() == "":
        return state
    try:
        value = float(str(raw).replace(",", ""))
    except ValueError:
        value = -1.0
    if not math.isfinite(value) or value < 0 or value > MAX_AMOUNT:
        return replace(state, status="予算は0以上の数値で入力してください")
    try:
        store.upsert_budget(state.owner, state.month, state.categories.require(category), int(value))
        rows = store.list_budgets(state.owner, state.month)
    except KakeiboError as exc:
        return _fail(state, "予算保存エラー", exc)
    return replace(state, budgets={b.category: b.amount for b in rows}, rollover_offer=None, status="")


def accept_rollover_offer(state: AppState, store: SQLiteStore) -> AppState:
    source = state.rollover_offer
    if not source:
        return state
    try:
        copied = rollover.accept_rollover(store, state.owner, source, state.month)
        rows = store.list_budgets(state.owner, state.month)
    except KakeiboError as exc:
        return _fail(state, "予算コピーエラー", exc)
    return replace(
        state,
        budgets={b.category: b.amount for b in rows},
        rollover_offer=None,
        status=f"{source} の予算を{copied}件コピーしました",
    )


def decline_rollover_offer(state: AppState) -> AppState:
    return replace(state, rollover_offer=None)


def copy_budgets_from(state: AppState, store: SQLiteStore, source: str) -> AppState:
    """Replace the selected month's budgets with those of ``source``."""
    try:
        rollover.copy_budgets(store, state.owner, source, state.month)
        rows = store.list_budgets(state.owner, state.month)
    except KakeiboError as exc:
        return _fail(state, "予算コピーエラー", exc)
    return replace(
        state,
        budgets={b.category: b.amount for b in rows},
        rollover_offer=None,
        status="予算をコピーしました",
    )


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def import_csv(state: AppState, store: SQLiteStore, text: str, kind: str) -> AppState:
    """Import a CSV file of ``kind`` for the signed-in owner.

    Rows that fail validation are left out of the batch and only counted.
    Categories referenced by imported transactions or budgets that are not
    registered yet are created in the same store transaction as the rows,
    so a failed import writes nothing.
    """
    try:
        batch = csv_codec.decode(text, kind)
        if kind == csv_codec.CATEGORIES:
            new_names = [name for name in batch.records if name not in state.categories]
            if not new_names:
                raise ValidationError("新しいカテゴリはありません")
            store.import_records(state.owner, new_categories=new_names)
        else:
            missing = []
            for record in batch.records:
                if record.category not in state.categories and record.category not in missing:
                    missing.append(record.category)
            if kind == csv_codec.TRANSACTIONS:
                store.import_records(state.owner, new_categories=missing, transactions=batch.records)
            else:
                store.import_records(state.owner, new_categories=missing, budgets=batch.records)
    except KakeiboError as exc:
        return _fail(state, "取り込みエラー", exc)

    logger.info("Imported %d %s row(s) for %s", len(batch), kind, state.owner)
    state = load_categories(state, store)
    state = load_transactions(state, store)
    if kind == csv_codec.BUDGETS:
        try:
            rows = store.list_budgets(state.owner, state.month)
        except KakeiboError as exc:
            return _fail(state, "予算読み込みエラー", exc)
        state = replace(state, budgets={b.category: b.amount for b in rows})
    message = f"{len(batch)}件を取り込みました"
    if batch.dropped:
        message += f"（{batch.dropped}件は形式エラーのためスキップ）"
    return replace(state, status=message)


def export_csv(state: AppState, store: SQLiteStore, kind: str, scope: str = "all") -> Tuple[str, str]:
    """Return ``(filename, csv_text)`` for a download.

    ``scope`` is ``"all"`` or ``"month"`` (the selected month). Categories
    ignore the scope.

    Raises:
        KakeiboError: If the store cannot be read.
    """
    if kind == csv_codec.CATEGORIES:
        return csv_codec.export_filename("categories"), csv_codec.encode_categories(state.categories)
    period = state.month if scope == "month" else "all"
    if kind == csv_codec.TRANSACTIONS:
        items = list(state.transactions)
        if scope == "month":
            items = agg.month_items(items, state.month)
        return csv_codec.export_filename("transactions", period), csv_codec.encode_transactions(items)
    if kind == csv_codec.BUDGETS:
        if scope == "month":
            rows = store.list_budgets(state.owner, state.month)
        else:
            rows = store.list_all_budgets(state.owner)
        return csv_codec.export_filename("budgets", period), csv_codec.encode_budgets(rows)
    raise ValueError(f"unknown export kind '{kind}'")


# ---------------------------------------------------------------------------
# Savings goals
# ---------------------------------------------------------------------------


def add_goal(
    state: AppState,
    store: SQLiteStore,
    name: str,
    target_amount: Any,
    due_date: Optional[str] = None,
) -> AppState:
    try:
        goal = SavingsGoal(name=name, target_amount=target_amount, due_date=due_date or None)
        store.insert_goal(state.owner, goal)
    except KakeiboError as exc:
        return _fail(state, "目標保存エラー", exc)
    return load_goals(state, store)


def update_goal_progress(state: AppState, store: SQLiteStore, goal_id: int, current_amount: Any) -> AppState:
    try:
        store.update_goal_progress(state.owner, goal_id, parse_amount(current_amount))
    except KakeiboError as exc:
        return _fail(state, "目標更新エラー", exc)
    return load_goals(state, store)


def delete_goal(state: AppState, store: SQLiteStore, goal_id: int) -> AppState:
    try:
        store.delete_goal(state.owner, goal_id)
    except KakeiboError as exc:
        return _fail(state, "目標削除エラー", exc)
    return load_goals(state, store)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


def derive_view(state: AppState, today: Optional[date] = None) -> Dict[str, Any]:
    """Recompute every summary the dashboard shows from ``state``."""
    month_items = agg.month_items(state.transactions, state.month)
    filtered = apply_filter(month_items, state.filter)
    spend = agg.category_spend_map(month_items)
    return {
        "month_items": month_items,
        "filtered": filtered,
        "totals": agg.totals(filtered),
        "category_breakdown": agg.category_breakdown(filtered),
        "purpose_breakdown": agg.purpose_breakdown(filtered),
        "monthly_series": agg.monthly_series(state.transactions),
        "budget_summary": bud.evaluate(state.budgets, filtered, state.filter, state.month, today),
        "budget_chart": bud.budget_chart_data(state.categories, state.budgets, spend),
        "category_status": bud.category_budget_status(state.categories, state.budgets, spend),
        "category_options": category_options(state.categories, state.transactions, state.filter.type),
    }
