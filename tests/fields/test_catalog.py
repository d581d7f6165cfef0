import json

import pytest

from notecharts.fields.catalog import (
    FieldCatalog,
    FieldDefinition,
    SystemFieldNames,
    ai_derived_fields,
    notebook_fields,
    parse_component_config,
)


COMPONENTS = {
    "componentInstances": [
        {"id": "c-date", "type": "date", "title": "发布时间"},
        {"id": "c-amt", "type": "number", "title": "金额"},
        {"id": "c-cat", "type": "text-short", "title": "记账类型"},
        {"id": "c-x", "type": "mystery", "title": ""},
    ]
}


def test_parse_component_config_accepts_string_object_and_list():
    assert len(parse_component_config(json.dumps(COMPONENTS))) == 4
    assert len(parse_component_config(COMPONENTS["componentInstances"])) == 4
    assert parse_component_config("{not json") == []
    assert parse_component_config(None) == []
    assert parse_component_config([1, "a", {"type": "date"}]) == [{"type": "date"}]

def test_notebook_fields_roles_and_aliases():
    fields, aliases = notebook_fields(COMPONENTS)
    by_name = {f.name: f for f in fields}
    assert by_name["发布时间"].is_date
    assert by_name["金额"].is_metric and by_name["金额"].data_type == "number"
    assert by_name["记账类型"].role == "dimension" and by_name["记账类型"].data_type == "text"
    # untitled components fall back to their type
    assert "mystery" in by_name
    assert aliases == {"发布时间": "c-date", "金额": "c-amt", "记账类型": "c-cat"}

def test_field_definition_normalizes_and_rejects_empty_name():
    fd = FieldDefinition(id="", name="  主题 ", role="axis", data_type="blob", source="elsewhere")
    assert fd.name == "主题"
    assert fd.role == "dimension"
    assert fd.data_type == "text"
    assert fd.source == "custom"
    assert fd.id.startswith("custom-")
    with pytest.raises(ValueError):
        FieldDefinition(id="x", name="   ")

def test_catalog_names_are_unique_first_registration_wins():
    comps = [{"id": "c1", "type": "number", "title": "日期"}]
    cat = FieldCatalog.from_notebook(comps)
    dates = [f for f in cat if f.name == "日期"]
    assert len(dates) == 1
    assert dates[0].source == "notebook"
    assert len(cat.names) == len(set(cat.names))

def test_from_notebook_orders_notebook_fields_first():
    cat = FieldCatalog.from_notebook(COMPONENTS, notebook_type="记账")
    assert cat.names[:4] == ["发布时间", "金额", "记账类型", "mystery"]
    assert [f.source for f in cat.fields[4:]] == ["system"] * 5
    assert cat.get("AI 评分").is_metric

def test_mood_notebook_uses_mood_system_names():
    names = SystemFieldNames.for_notebook("心情日记")
    assert names.score == "情绪分数"
    cat = FieldCatalog.from_notebook([], notebook_type="心情日记")
    assert "情绪来源" in cat
    assert "AI 来源" not in cat
    assert SystemFieldNames.for_notebook(None).score == "AI 评分"

def test_ai_derived_fields_from_missing_specs():
    out = ai_derived_fields([
        {"name": "主题", "role": "dimension", "data_type": "category", "meaning": "文章主题"},
        {"name": "金额", "role": "metric", "data_type": "number"},
        {"name": "", "role": "metric"},
        "garbage",
    ])
    assert [f.name for f in out] == ["主题", "金额"]
    assert all(f.source == "ai-derived" for f in out)
    assert out[0].description == "文章主题"
    assert out[1].is_metric

def test_ensure_registers_custom_field_once():
    cat = FieldCatalog()
    fd = cat.ensure("评分", "metric")
    assert fd.source == "custom" and fd.data_type == "number"
    assert cat.ensure("评分", "dimension") is fd
    assert len(cat) == 1

def test_add_remove_and_filters():
    cat = FieldCatalog()
    assert cat.add(FieldDefinition("a", "A", "metric", "number"))
    assert not cat.add(FieldDefinition("b", "A"))
    cat.add(FieldDefinition("c", "C"))
    assert [f.name for f in cat.metrics()] == ["A"]
    assert [f.name for f in cat.dimensions()] == ["C"]
    assert cat.remove("A") and not cat.remove("A")
    assert cat.by_source("notebook")[0].name == "C"

def test_to_payload_includes_example_only_when_given():
    fd = FieldDefinition("a", "金额", "metric", "number")
    assert "example" not in fd.to_payload()
    assert fd.to_payload(12)["example"] == 12
