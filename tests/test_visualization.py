from kakeibo import visualization as viz


def test_empty_inputs_give_placeholder_figures():
    for fig in (
        viz.create_category_pie_chart({}),
        viz.create_purpose_bar_chart({}),
        viz.create_monthly_trend_chart([]),
        viz.create_budget_chart([]),
    ):
        assert fig.layout.title.text == viz.EMPTY_TITLE
        assert len(fig.data) == 0


def test_monthly_trend_has_income_expense_and_balance():
    series = [
        {"month": "2024-01", "income": 300, "expense": 100, "balance": 200},
        {"month": "2024-02", "income": 0, "expense": 50, "balance": -50},
    ]
    fig = viz.create_monthly_trend_chart(series)
    assert [trace.name for trace in fig.data] == ["収入", "支出", "収支"]
    assert list(fig.data[2].y) == [200, -50]


def test_budget_chart_stacks_within_remaining_and_over():
    rows = [{"name": "食費", "budget": 10000, "spent": 12000, "remaining": 0, "over": 2000}]
    fig = viz.create_budget_chart(rows)
    assert [list(trace.x) for trace in fig.data] == [[10000], [0], [2000]]


def test_purpose_chart_uses_japanese_labels():
    fig = viz.create_purpose_bar_chart({"waste": 900, "consumption": 1200})
    labels = {trace.name for trace in fig.data}
    assert labels == {"浪費", "消費"}
