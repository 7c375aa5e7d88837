"""Streamlit app for kakeibo.

The page is a thin shell over :mod:`kakeibo.state`: widgets read the
current :class:`~kakeibo.state.AppState` from ``st.session_state``, every
button or form submit calls exactly one transition, and the resulting
state is stored back before the script reruns.

To run the dashboard from the command line::

    streamlit run kakeibo/dashboard.py

or use ``run_dashboard.py`` in the project root.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import date
from typing import Callable

import streamlit as st

if __package__:
    from . import config, csv_codec, rollover
    from . import state as app
    from . import visualization as viz
    from .exceptions import KakeiboError
    from .filters import category_options
    from .formatting import format_yen, purpose_label
    from .goals import goal_progress, progress_ratio
    from .models import (
        ALL,
        PURPOSE_LABELS,
        TYPE_LABELS,
        Purpose,
        TransactionType,
        is_iso_date,
        is_month_key,
    )
    from .store import SQLiteStore
else:
    # ``streamlit run kakeibo/dashboard.py`` executes this file as a script.
    CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
    PARENT_DIR = os.path.dirname(CURRENT_DIR)
    if PARENT_DIR not in sys.path:
        sys.path.insert(0, PARENT_DIR)
    from kakeibo import config, csv_codec, rollover  # type: ignore
    from kakeibo import state as app  # type: ignore
    from kakeibo import visualization as viz  # type: ignore
    from kakeibo.exceptions import KakeiboError  # type: ignore
    from kakeibo.filters import category_options  # type: ignore
    from kakeibo.formatting import format_yen, purpose_label  # type: ignore
    from kakeibo.goals import goal_progress, progress_ratio  # type: ignore
    from kakeibo.models import (  # type: ignore
        ALL,
        PURPOSE_LABELS,
        TYPE_LABELS,
        Purpose,
        TransactionType,
        is_iso_date,
        is_month_key,
    )
    from kakeibo.store import SQLiteStore  # type: ignore

logger = logging.getLogger(__name__)

IMPORT_KINDS = {
    "明細": csv_codec.TRANSACTIONS,
    "カテゴリ": csv_codec.CATEGORIES,
    "予算": csv_codec.BUDGETS,
}


def _store() -> SQLiteStore:
    if "_store" not in st.session_state:
        st.session_state["_store"] = SQLiteStore()
    return st.session_state["_store"]


def _flags() -> rollover.RolloverFlags:
    if "_flags" not in st.session_state:
        st.session_state["_flags"] = rollover.RolloverFlags()
    return st.session_state["_flags"]


def _state() -> app.AppState:
    if "app_state" not in st.session_state:
        st.session_state["app_state"] = app.initial_state()
    return st.session_state["app_state"]


def _dispatch(transition: Callable[..., app.AppState], *args, **kwargs) -> None:
    """Run one transition against the current state and rerun the page."""
    st.session_state["app_state"] = transition(_state(), *args, **kwargs)
    st.rerun()


def _is_date_bound(value: str) -> bool:
    """An empty bound means no limit; anything else must be an ISO date."""
    return not value or is_iso_date(value)


def render_login() -> None:
    st.title("家計簿へようこそ")
    st.caption("メールアドレスでログインします。")
    with st.form("login"):
        email = st.text_input("メールアドレス", placeholder="you@example.com")
        if st.form_submit_button("ログイン"):
            _dispatch(app.sign_in, _store(), email, _flags())


def render_sidebar(state: app.AppState) -> None:
    st.sidebar.header("家計簿")
    st.sidebar.caption(state.owner or "")
    month = st.sidebar.text_input("対象月 (YYYY-MM)", value=state.month).strip()
    if not is_month_key(month):
        # Stay on the loaded month until the input is a valid month key.
        st.sidebar.error(f"月の形式が正しくありません: {month}")
    elif month != state.month:
        _dispatch(app.select_month, _store(), month, _flags())

    st.sidebar.subheader("絞り込み")
    flt = state.filter
    type_options = [ALL] + [t.value for t in TransactionType]
    type_labels = {ALL: "すべて", **{t.value: TYPE_LABELS[t] for t in TransactionType}}
    txn_type = st.sidebar.selectbox(
        "種別", type_options, index=type_options.index(flt.type), format_func=type_labels.get
    )
    if txn_type != flt.type:
        _dispatch(app.set_filter, type=txn_type)

    if flt.type == TransactionType.EXPENSE.value:
        purpose_options = [ALL] + [p.value for p in Purpose]
        purpose = st.sidebar.selectbox(
            "分類",
            purpose_options,
            index=purpose_options.index(flt.purpose),
            format_func=lambda v: "すべて" if v == ALL else purpose_label(v),
        )
        if purpose != flt.purpose:
            _dispatch(app.set_filter, purpose=purpose)

    view_categories = [ALL] + category_options(state.categories, state.transactions, flt.type)
    category = st.sidebar.selectbox(
        "カテゴリ",
        view_categories,
        index=view_categories.index(flt.category) if flt.category in view_categories else 0,
        format_func=lambda v: "すべて" if v == ALL else v,
    )
    if category != flt.category:
        _dispatch(app.set_filter, category=category)

    query = st.sidebar.text_input("メモ検索", value=flt.query)
    if query != flt.query:
        _dispatch(app.set_filter, query=query)

    col1, col2 = st.sidebar.columns(2)
    date_from = col1.text_input("開始日", value=flt.date_from, placeholder="YYYY-MM-DD").strip()
    date_to = col2.text_input("終了日", value=flt.date_to, placeholder="YYYY-MM-DD").strip()
    bad = [value for value in (date_from, date_to) if not _is_date_bound(value)]
    if bad:
        st.sidebar.error(f"日付の形式が正しくありません: {bad[0]}")
    elif date_from != flt.date_from or date_to != flt.date_to:
        _dispatch(app.set_filter, date_from=date_from, date_to=date_to)

    if not flt.is_default and st.sidebar.button("絞り込みを解除"):
        _dispatch(app.reset_filter)

    st.sidebar.divider()
    if st.sidebar.button("ログアウト"):
        _dispatch(app.sign_out)


def render_messages(state: app.AppState) -> None:
    if state.status:
        if "エラー" in state.status or "正しくありません" in state.status:
            st.error(state.status)
        else:
            st.info(state.status)
    if state.notice:
        st.warning(state.notice)
        if st.button("閉じる", key="dismiss_notice"):
            _dispatch(app.dismiss_notice)
    if state.rollover_offer:
        st.info(f"{state.rollover_offer} の予算を {state.month} にコピーしますか？")
        col1, col2 = st.columns(2)
        if col1.button("コピーする", key="accept_rollover"):
            _dispatch(app.accept_rollover_offer, _store())
        if col2.button("今回はしない", key="decline_rollover"):
            _dispatch(app.decline_rollover_offer)


def render_entry_form(state: app.AppState) -> None:
    with st.form("entry", clear_on_submit=True):
        col1, col2, col3 = st.columns(3)
        day = col1.date_input("日付", value=date.today())
        amount = col2.number_input("金額", min_value=0, step=100, value=0)
        txn_type = col3.selectbox(
            "種別", [t.value for t in TransactionType], format_func=lambda v: TYPE_LABELS[TransactionType(v)]
        )
        col4, col5, col6 = st.columns(3)
        purpose = col4.selectbox(
            "分類（支出のみ）", [p.value for p in Purpose], format_func=lambda v: PURPOSE_LABELS[Purpose(v)]
        )
        category = col5.selectbox("カテゴリ", list(state.categories))
        note = col6.text_input("メモ", placeholder="例: スーパー")
        if st.form_submit_button("登録する"):
            if not amount:
                st.warning("金額を入力してください")
                return
            _dispatch(
                app.add_transaction,
                _store(),
                day=day.isoformat(),
                amount=amount,
                txn_type=txn_type,
                purpose=purpose,
                category=category or "",
                note=note,
            )


def render_summary(view: dict) -> None:
    totals = view["totals"]
    col1, col2, col3 = st.columns(3)
    col1.metric("収入", format_yen(totals["income"]))
    col2.metric("支出", format_yen(totals["expense"]))
    col3.metric("収支", format_yen(totals["balance"]))

    summary = view["budget_summary"]
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("予算", format_yen(summary.budget_total))
    col2.metric("残り", format_yen(summary.remaining), delta="超過" if summary.is_over else None,
                delta_color="inverse")
    col3.metric("使用率", f"{summary.percent}%")
    col4.metric("残り日数", f"{summary.days_left}日")
    if summary.budget_total > 0:
        st.progress(min(summary.percent, 100) / 100)


def render_charts(view: dict) -> None:
    col1, col2 = st.columns(2)
    col1.plotly_chart(viz.create_category_pie_chart(view["category_breakdown"]), use_container_width=True)
    col2.plotly_chart(viz.create_purpose_bar_chart(view["purpose_breakdown"]), use_container_width=True)
    st.plotly_chart(viz.create_monthly_trend_chart(view["monthly_series"]), use_container_width=True)
    st.plotly_chart(viz.create_budget_chart(view["budget_chart"]), use_container_width=True)


def render_transactions(view: dict) -> None:
    items = view["filtered"]
    if not items:
        st.info("この月の明細はまだありません。")
        return
    for item in items:
        col1, col2, col3, col4 = st.columns([2, 4, 2, 1])
        col1.write(item.date)
        label = item.type.label if item.is_income else f"{item.type.label}・{item.purpose.label}"
        col2.write(f"{item.category}（{label}） {item.note}")
        col3.write(format_yen(item.amount))
        if col4.button("削除", key=f"delete_txn_{item.id}"):
            _dispatch(app.delete_transaction, _store(), item.id)


def render_categories(state: app.AppState, view: dict) -> None:
    with st.form("add_category", clear_on_submit=True):
        name = st.text_input("新しいカテゴリ", placeholder="例: 交際費")
        if st.form_submit_button("追加する"):
            _dispatch(app.add_category, _store(), name)

    spend = {row["name"]: row["spent"] for row in view["category_status"]}
    for name in state.categories:
        col1, col2, col3, col4 = st.columns([3, 3, 1, 1])
        new_name = col1.text_input("名前", value=name, key=f"rename_{name}", label_visibility="collapsed")
        col2.caption(f"今月の支出: {format_yen(spend.get(name, 0))}")
        if col3.button("保存", key=f"save_cat_{name}"):
            _dispatch(app.rename_category, _store(), name, new_name)
        if col4.button("削除", key=f"delete_cat_{name}"):
            _dispatch(app.delete_category, _store(), name)


def render_budgets(state: app.AppState, view: dict) -> None:
    col1, col2 = st.columns([3, 1])
    source = col1.text_input("コピー元の月", value=rollover.previous_month(state.month))
    if col2.button("この月にコピー"):
        _dispatch(app.copy_budgets_from, _store(), source)

    for row in view["category_status"]:
        col1, col2, col3 = st.columns([3, 2, 1])
        suffix = "（超過）" if row["is_over"] else ""
        col1.write(f"**{row['name']}** 残り: {format_yen(row['remaining'])}{suffix}")
        draft = col2.text_input(
            "予算",
            value=str(state.budgets[row["name"]]) if row["name"] in state.budgets else "",
            key=f"budget_{state.month}_{row['name']}",
            placeholder="例: 30000",
            label_visibility="collapsed",
        )
        if col3.button("保存", key=f"save_budget_{row['name']}"):
            _dispatch(app.save_budget, _store(), row["name"], draft)


def render_csv(state: app.AppState) -> None:
    st.subheader("書き出し")
    exports = [
        ("明細CSV（この月）", csv_codec.TRANSACTIONS, "month"),
        ("明細CSV（全期間）", csv_codec.TRANSACTIONS, "all"),
        ("カテゴリCSV", csv_codec.CATEGORIES, "all"),
        ("予算CSV（この月）", csv_codec.BUDGETS, "month"),
        ("予算CSV（全期間）", csv_codec.BUDGETS, "all"),
    ]
    for label, kind, scope in exports:
        try:
            filename, text = app.export_csv(state, _store(), kind, scope)
        except KakeiboError as exc:
            st.error(f"CSVエラー: {exc}")
            continue
        st.download_button(label, data=text.encode("utf-8"), file_name=filename, mime="text/csv",
                           key=f"export_{kind}_{scope}")

    st.subheader("取り込み")
    kind_label = st.radio("種類", list(IMPORT_KINDS.keys()), horizontal=True)
    uploaded = st.file_uploader("CSVファイル", type=["csv"])
    if uploaded is not None and st.button("取り込む"):
        text = uploaded.getvalue().decode("utf-8-sig", errors="replace")
        _dispatch(app.import_csv, _store(), text, IMPORT_KINDS[kind_label])


def render_goals(state: app.AppState) -> None:
    with st.form("add_goal", clear_on_submit=True):
        col1, col2, col3 = st.columns(3)
        name = col1.text_input("目標名", placeholder="例: 旅行")
        target = col2.number_input("目標金額", min_value=0, step=1000, value=0)
        due = col3.date_input("期限", value=None)
        if st.form_submit_button("追加する"):
            _dispatch(app.add_goal, _store(), name, target, due.isoformat() if due else None)

    if not state.goals:
        st.info("目標はまだありません。")
        return
    for goal in state.goals:
        progress = goal_progress(goal)
        with st.expander(f"{goal.name}（{progress['percent']}%）"):
            col1, col2, col3 = st.columns(3)
            col1.metric("目標金額", format_yen(goal.target_amount))
            col2.metric("現在", format_yen(goal.current_amount))
            col3.metric("残り", format_yen(progress["remaining"]))
            st.progress(progress_ratio(goal))
            if progress["days_until_due"] is not None:
                st.caption(f"期限まで {progress['days_until_due']} 日")
            current = st.number_input(
                "現在の金額", min_value=0, step=1000, value=goal.current_amount, key=f"goal_current_{goal.id}"
            )
            col1, col2 = st.columns(2)
            if col1.button("更新", key=f"goal_update_{goal.id}"):
                _dispatch(app.update_goal_progress, _store(), goal.id, current)
            if col2.button("削除", key=f"goal_delete_{goal.id}"):
                _dispatch(app.delete_goal, _store(), goal.id)


def main() -> None:
    st.set_page_config(page_title="家計簿", page_icon="📒", layout="wide")
    logging.basicConfig(level=config.LOG_LEVEL)

    state = _state()
    if not state.signed_in:
        render_login()
        if state.status:
            st.info(state.status)
        return

    render_sidebar(state)
    st.title("家計簿")
    st.caption("今日の支出が、未来の安心になる。")
    render_messages(state)

    view = app.derive_view(state)
    tabs = st.tabs(["明細", "集計", "カテゴリ", "予算", "CSV", "目標"])
    with tabs[0]:
        render_entry_form(state)
        render_transactions(view)
    with tabs[1]:
        render_summary(view)
        render_charts(view)
    with tabs[2]:
        render_categories(state, view)
    with tabs[3]:
        render_summary(view)
        render_budgets(state, view)
    with tabs[4]:
        render_csv(state)
    with tabs[5]:
        render_goals(state)


if __name__ == "__main__":
    main()
