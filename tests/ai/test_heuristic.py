import asyncio

import pytest

from notecharts.ai.contracts import CollaboratorResponseError, DeriveRequest, RecommendRequest, RerankRequest
from notecharts.ai.heuristic import HeuristicCollaborator, derive_value, rule_pick_first_by_preference


def _recommend(fields, sample, **kw):
    req = RecommendRequest(fields=[{"name": f} for f in fields], notes_sample=sample, **kw)
    return asyncio.run(HeuristicCollaborator().recommend(req))


def test_rule_pick_first_by_preference():
    assert rule_pick_first_by_preference(["创建时间", "发布时间"], ["发布时间", "时间"]) == "发布时间"
    assert rule_pick_first_by_preference(["x", "y"], ["z"]) == "x"
    assert rule_pick_first_by_preference([], ["z"]) == ""

def test_content_collection_recommends_topic_pie():
    rec = _recommend(["标题", "日期"], [{"title": "OpenAI 发布新模型", "excerpt": ""}])
    assert rec.chart_type == "pie"
    fp = rec.field_plan
    assert fp.selected.dimension == "主题"
    assert fp.selected.metric == "count"
    assert fp.selected.time == "日期"
    assert [m.name for m in fp.missing_fields] == ["主题"]
    assert fp.missing_fields[0].data_type == "category"

def test_known_topic_is_not_requested_again():
    rec = _recommend(["主题", "日期"], [{"title": "AI 工具合集"}])
    assert rec.field_plan.missing_fields == []

def test_accounting_recommends_sum_by_month():
    rec = _recommend(["日期"], [{"title": "午饭", "excerpt": "支出 ¥35"}])
    fp = rec.field_plan
    assert rec.chart_type == "pie"
    assert fp.aggregation == "sum"
    assert fp.time_granularity == "month"
    assert [m.name for m in fp.missing_fields] == ["记账类型", "金额"]
    assert fp.missing_fields[1].role == "metric"

def test_generic_notes_get_a_count_trend():
    rec = _recommend(["日期", "心得"], [{"title": "随便写写"}])
    assert rec.chart_type == "line"
    assert rec.field_plan.selected.time == "日期"
    assert rec.field_plan.time_granularity == "day"
    assert rec.confidence == 0.45

def test_rerank_picks_by_preference_and_rejects_unknown_type():
    collab = HeuristicCollaborator()
    req = RerankRequest(
        chart_type="heatmap",
        candidate_fields={"time": ["笔记创建时间", "日期"], "dimension": ["来源", "主题"], "metric": ["count", "金额"]},
    )
    ans = asyncio.run(collab.rerank(req))
    sf = ans.selected_fields
    assert ans.chart_type == "heatmap"
    assert sf.time == "日期"
    assert sf.dimension == "主题"
    assert sf.dimension2 == "来源"
    assert sf.metric == "金额"
    bar = asyncio.run(collab.rerank(req.model_copy(update={"chart_type": "bar"})))
    assert bar.selected_fields.dimension2 == ""
    with pytest.raises(CollaboratorResponseError):
        asyncio.run(collab.rerank(req.model_copy(update={"chart_type": "radar"})))

def test_derive_fields_uses_vocabulary_and_numbers():
    req = DeriveRequest(
        missing_fields=[
            {"name": "主题", "data_type": "category"},
            {"name": "金额", "data_type": "number"},
            {"name": ""},
        ],
        notes=[
            {"id": "n1", "title": "AI 工具推荐", "excerpt": "花了 ¥12.5"},
            {"id": "n2", "title": "杂记", "excerpt": ""},
            {"title": "没有编号"},
        ],
        fixed_vocabularies={"主题": ["模型", "工具", "其他"]},
    )
    out = asyncio.run(HeuristicCollaborator().derive_fields(req))
    assert out.field_values == {
        "主题": {"n1": "工具", "n2": "其他"},
        "金额": {"n1": 12.5, "n2": 1},
    }

def test_derive_value_edges():
    note = {"title": "随手记", "excerpt": ""}
    assert derive_value("category", ["餐饮", "交通"], note) == "餐饮"
    assert derive_value("category", None, note) == "其他"
    assert derive_value("date", ["x"], note) is None
