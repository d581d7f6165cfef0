from datetime import datetime, timedelta
import logging

from notecharts.charts.gates import (
    REASON_BAR_TOPN,
    REASON_HEATMAP_DIM2,
    REASON_HEATMAP_SPARSE,
    REASON_LINE_POINTS,
    REASON_PIE_FLAT,
    REASON_PIE_TOPN,
    evaluate,
)
from notecharts.charts.model import FieldSelection
from notecharts.config_model.model import GateConfig
from notecharts.dataset.builder import AnalysisDatum


def _rows(*values):
    base = datetime(2025, 12, 1)
    return [AnalysisDatum(id=f"r{i}", date=base + timedelta(days=i), values=dict(v)) for i, v in enumerate(values)]


def _days(n):
    return _rows(*({"日期": f"2025-12-{i + 1:02d}", "评分": i} for i in range(n)))


def test_missing_dimension_downgrades_line_to_count_bar():
    rows = _rows({"x": 1}, {"x": 2}, {"x": 3})
    res = evaluate("line", rows, FieldSelection(dimension="发布时间", metric="count"), GateConfig(field_max_missing_rate=0.4))
    assert res.chart_type == "bar"
    assert "缺失率" in res.reason
    assert res.rule == "missing_rate"
    assert res.count_metric

def test_missing_metric_also_fires():
    rows = _rows({"主题": "a"}, {"主题": "b", "金额": 5}, {"主题": "c"})
    res = evaluate("pie", rows, {"dimension": "主题", "metric": "金额"})
    assert res.rule == "missing_rate"

def test_count_metric_is_never_missing():
    rows = _rows({"主题": "a"}, {"主题": "b"})
    assert evaluate("pie", rows, FieldSelection(dimension="主题", metric="count")).chart_type == "pie"

def test_pie_with_ten_even_categories_downgrades():
    rows = _rows(*({"主题": f"t{i}"} for i in range(10)))
    res = evaluate("pie", rows, FieldSelection(dimension="主题", metric="count"), GateConfig(pie_topn=8))
    assert res.chart_type == "bar"
    assert res.reason == REASON_PIE_TOPN

def test_pie_flat_rule_when_topn_is_generous():
    rows = _rows(*({"主题": f"t{i}"} for i in range(13)))
    gates = GateConfig(pie_topn=20, pie_max_cardinality=12, pie_min_top_share=0.15)
    res = evaluate("pie", rows, FieldSelection(dimension="主题"), gates)
    assert res.reason == REASON_PIE_FLAT

def test_pie_within_limits_is_kept():
    rows = _rows({"主题": "a"}, {"主题": "a"}, {"主题": "b"})
    assert evaluate("pie", rows, FieldSelection(dimension="主题")).chart_type == "pie"

def test_bar_over_max_categories_keeps_type_with_topn():
    rows = _rows(*({"主题": f"t{i}"} for i in range(5)))
    res = evaluate("bar", rows, FieldSelection(dimension="主题"), GateConfig(bar_max_categories=3))
    assert res.chart_type == "bar"
    assert res.reason == REASON_BAR_TOPN
    assert res.top_n == 3
    assert not res.downgraded

def test_line_needs_enough_time_points():
    sel = FieldSelection(time="日期", metric="评分")
    assert evaluate("line", _days(5), sel).chart_type == "line"
    res = evaluate("line", _days(4), sel)
    assert res.chart_type == "bar"
    assert res.reason == REASON_LINE_POINTS

def test_line_falls_back_to_dimension_axis():
    assert evaluate("line", _days(6), FieldSelection(dimension="日期")).chart_type == "line"
    assert evaluate("line", _days(6), FieldSelection()).rule == "line_points"

def test_heatmap_without_second_dimension():
    rows = _rows({"a": "x", "b": "p"})
    res = evaluate("heatmap", rows, FieldSelection(dimension="a"))
    assert res.reason == REASON_HEATMAP_DIM2

def test_heatmap_with_density_above_threshold_is_retained():
    rows = _rows(
        {"a": "x", "b": "p"},
        {"a": "y", "b": "q"},
        {"a": "z", "b": "r"},
        {"a": "x", "b": "p"},
    )
    res = evaluate("heatmap", rows, FieldSelection(dimension="a", dimension2="b"))
    assert res.chart_type == "heatmap"
    assert res.reason == ""

def test_sparse_heatmap_downgrades():
    # 11 diagonal pairs over an 11 x 11 grid
    rows = _rows(*({"a": f"x{i}", "b": f"y{i}"} for i in range(11)))
    res = evaluate("heatmap", rows, FieldSelection(dimension="a", dimension2="b"), GateConfig(heatmap_min_density=0.1))
    assert res.chart_type == "bar"
    assert res.reason == REASON_HEATMAP_SPARSE

def test_unknown_chart_type_is_treated_as_bar():
    rows = _rows({"主题": "a"})
    res = evaluate("radar", rows, FieldSelection(dimension="主题"))
    assert res.chart_type == "bar"
    assert res.reason == ""

def test_missing_rule_wins_over_type_rules():
    rows = _rows(*({"主题": f"t{i}"} if i % 2 else {} for i in range(20)))
    res = evaluate("pie", rows, FieldSelection(dimension="主题"))
    assert res.rule == "missing_rate"

def test_gate_logs_when_it_fires():
    class Cap(logging.Handler):
        def __init__(self):
            super().__init__(level=0)
            self.records = []

        def emit(self, record):
            self.records.append(record)

    cap = Cap()
    lg = logging.getLogger("notecharts.gates")
    lg.addHandler(cap)
    lg.setLevel(logging.INFO)
    try:
        evaluate("heatmap", _rows({"a": "x"}), FieldSelection(dimension="a"))
    finally:
        lg.removeHandler(cap)
    assert cap.records[-1].rule == "heatmap_dim2"
    assert cap.records[-1].to_type == "bar"
