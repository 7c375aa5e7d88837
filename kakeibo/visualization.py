"""Plotly visualisation helpers for the household ledger.

Each function accepts the plain values returned by
:mod:`kakeibo.aggregation` and :mod:`kakeibo.budgets` and produces a
`plotly.graph_objects.Figure` that Streamlit can render via
``st.plotly_chart``. Empty input yields an empty figure titled
"データがありません" rather than an error.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .formatting import purpose_label

EMPTY_TITLE = "データがありません"

INCOME_COLOR = "#16a34a"
EXPENSE_COLOR = "#dc2626"
BALANCE_COLOR = "#2563eb"
REMAINING_COLOR = "#94a3b8"


def _empty_figure() -> go.Figure:
    fig = go.Figure()
    fig.update_layout(title=EMPTY_TITLE)
    return fig


def create_category_pie_chart(breakdown: Mapping[str, int], title: str | None = None) -> go.Figure:
    """Pie chart of expense amounts per category.

    Parameters
    ----------
    breakdown : Mapping[str, int]
        Category name to summed expense, as from ``category_breakdown``.
    title : str, optional
        Chart title.
    """
    if not breakdown:
        return _empty_figure()
    df = pd.DataFrame({"カテゴリ": list(breakdown.keys()), "金額": list(breakdown.values())})
    df = df.sort_values("金額", ascending=False)
    fig = px.pie(df, names="カテゴリ", values="金額", hole=0.4)
    fig.update_traces(textinfo="percent+label")
    fig.update_layout(title=title or "カテゴリ別支出")
    return fig


def create_purpose_bar_chart(breakdown: Mapping[str, int], title: str | None = None) -> go.Figure:
    """Bar chart of expense amounts per purpose (消費/浪費/投資)."""
    if not breakdown:
        return _empty_figure()
    df = pd.DataFrame({
        "分類": [purpose_label(key) for key in breakdown.keys()],
        "金額": list(breakdown.values()),
    })
    fig = px.bar(df, x="分類", y="金額", color="分類")
    fig.update_layout(title=title or "分類別支出", xaxis_title="分類", yaxis_title="金額 (円)", showlegend=False)
    return fig


def create_monthly_trend_chart(series: Sequence[Dict[str, int]], title: str | None = None) -> go.Figure:
    """Income, expense and balance per month across the full history.

    Parameters
    ----------
    series : Sequence[dict]
        Rows with month, income, expense and balance keys, sorted by
        month, as from ``monthly_series``.
    """
    if not series:
        return _empty_figure()
    df = pd.DataFrame(list(series))
    fig = go.Figure()
    fig.add_trace(go.Bar(x=df["month"], y=df["income"], name="収入", marker_color=INCOME_COLOR))
    fig.add_trace(go.Bar(x=df["month"], y=df["expense"], name="支出", marker_color=EXPENSE_COLOR))
    fig.add_trace(go.Scatter(
        x=df["month"],
        y=df["balance"],
        name="収支",
        mode="lines+markers",
        line=dict(color=BALANCE_COLOR),
    ))
    fig.update_layout(
        title=title or "月別推移",
        xaxis_title="月",
        yaxis_title="金額 (円)",
        barmode="group",
    )
    return fig


def create_budget_chart(rows: List[Dict[str, int]], title: str | None = None) -> go.Figure:
    """Stacked horizontal bars of spend within budget, remaining and overage."""
    if not rows:
        return _empty_figure()
    df = pd.DataFrame(rows)
    within = [min(spent, budget) if budget > 0 else 0 for spent, budget in zip(df["spent"], df["budget"])]
    fig = go.Figure()
    fig.add_trace(go.Bar(y=df["name"], x=within, name="使用済み", orientation="h", marker_color=BALANCE_COLOR))
    fig.add_trace(go.Bar(y=df["name"], x=df["remaining"], name="残り", orientation="h", marker_color=REMAINING_COLOR))
    fig.add_trace(go.Bar(y=df["name"], x=df["over"], name="超過", orientation="h", marker_color=EXPENSE_COLOR))
    fig.update_layout(
        title=title or "予算と支出",
        barmode="stack",
        xaxis_title="金額 (円)",
        yaxis=dict(autorange="reversed"),
    )
    return fig
