from datetime import datetime, timedelta

from notecharts.charts.candidates import generate
from notecharts.config_model.model import CandidatesCfg
from notecharts.dataset.builder import AnalysisDatum
from notecharts.fields.catalog import FieldDefinition as FD


def _rows(*values):
    base = datetime(2025, 12, 1)
    return [AnalysisDatum(id=f"r{i}", date=base + timedelta(days=i), values=dict(v)) for i, v in enumerate(values)]


DATE = FD("f-date", "日期", "dimension", "date")
TOPIC = FD("f-topic", "主题", "dimension", "category")
SOURCE = FD("f-src", "来源", "dimension", "text")
SCORE = FD("f-score", "评分", "metric", "number")
AMOUNT = FD("f-amt", "金额", "metric", "number")


def test_no_metric_yields_nothing():
    assert generate([DATE, TOPIC], _rows({"主题": "a"})) == []

def test_no_dimension_yields_nothing():
    assert generate([SCORE], _rows({"评分": 1})) == []

def test_rules_in_order_and_deterministic():
    rows = _rows(
        {"主题": "模型", "来源": "微博"},
        {"主题": "工具", "来源": "知乎"},
        {"主题": "模型", "来源": "微博"},
    )
    fields = [DATE, TOPIC, SOURCE, SCORE]
    out = generate(fields, rows)
    assert [c.chart_type for c in out] == ["line", "bar", "bar", "pie", "heatmap"]
    assert out[0].required_dimensions == ("日期",)
    assert out[3].required_dimensions == ("主题",)
    assert out[4].required_dimensions == ("主题", "来源")
    again = generate(fields, rows)
    assert [c.id for c in out] == [c.id for c in again]

def test_capped_at_max_candidates():
    many = [FD(f"m{i}", f"指标{i}", "metric", "number") for i in range(3)]
    out = generate([DATE, TOPIC, SOURCE] + many, _rows({"主题": "a"}, {"主题": "b"}))
    assert len(out) == 6
    assert len(generate([DATE, TOPIC, SOURCE] + many, [], CandidatesCfg(max_candidates=2))) == 2

def test_only_top_metrics_are_paired():
    many = [FD(f"m{i}", f"指标{i}", "metric", "number") for i in range(5)]
    out = generate([DATE] + many, [])
    assert [c.required_metrics[0] for c in out] == ["指标0", "指标1", "指标2"]

def test_pie_needs_two_to_eight_raw_values():
    one = _rows({"主题": "a"}, {"主题": "a"})
    assert "pie" not in [c.chart_type for c in generate([TOPIC, SCORE], one)]
    nine = _rows(*({"主题": f"t{i}"} for i in range(9)))
    assert "pie" not in [c.chart_type for c in generate([TOPIC, SCORE], nine)]
    eight = _rows(*({"主题": f"t{i}"} for i in range(8)))
    assert "pie" in [c.chart_type for c in generate([TOPIC, SCORE], eight)]

def test_fallback_bar_when_no_date_or_category_dimension():
    odd = FD("f-n", "编号", "dimension", "number")
    out = generate([odd, AMOUNT], [])
    assert len(out) == 1
    assert out[0].chart_type == "bar"
    assert out[0].required_dimensions == ("编号",)
    assert out[0].title == "金额概览"
