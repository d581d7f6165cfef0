import pytest

from notecharts.charts.model import (
    ChartCandidate,
    FieldSelection,
    FieldStats,
    GateResult,
    normalize_chart_type,
)

def test_normalize_chart_type():
    assert normalize_chart_type("PIE") == "pie"
    assert normalize_chart_type("scatter") == "bar"
    assert normalize_chart_type(None, default="line") == "line"

def test_field_stats_clamps():
    s = FieldStats(missing_rate=1.5, cardinality=-2, top_share=float("nan"))
    assert s.missing_rate == 1.0
    assert s.cardinality == 0
    assert s.top_share == 0.0

def test_candidate_normalizes_fields_and_derives_id():
    c = ChartCandidate("Bar", [" 主题 ", "主题", None], ["count"])
    assert c.chart_type == "bar"
    assert c.required_dimensions == ("主题",)
    assert c.id == ChartCandidate("bar", ["主题"], ["count"]).id
    assert c.to_record()["required_metrics"] == ["count"]

def test_candidate_rejects_unknown_type():
    with pytest.raises(ValueError):
        ChartCandidate("radar", ["a"], ["b"])

def test_area_is_a_render_type():
    assert ChartCandidate("area", ["日期"], ["count"]).chart_type == "area"

def test_field_selection_defaults_and_merge():
    sel = FieldSelection(time="日期", dimension="主题", aggregation="median", time_granularity="year")
    assert sel.aggregation == "count"
    assert sel.time_granularity == "none"
    merged = sel.merged({"metric": "金额", "dimension2": "来源"})
    assert merged.dimension == "主题"
    assert merged.metric == "金额"
    assert merged.dimension2 == "来源"
    assert sel.merged(FieldSelection(metric="x")).time == "日期"

def test_gate_result_downgraded():
    assert not GateResult("pie").downgraded
    assert GateResult("bar", "r", rule="pie_cardinality").downgraded
    assert not GateResult("bar", "r", rule="bar_topn", top_n=30).downgraded
