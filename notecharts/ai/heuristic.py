from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
import logging
import re

from notecharts.charts.model import CHART_TYPES
from notecharts.config_model.model import FieldPreferencesCfg
from notecharts.fields.catalog import COUNT_METRIC

from .contracts import (
    CollaboratorResponseError,
    DeriveRequest,
    DeriveResponse,
    RecommendRequest,
    RecommendResponse,
    RerankRequest,
    RerankResponse,
)
from .profile import infer_scene

log = logging.getLogger("notecharts.ai.heuristic")

_TIME_NAME = re.compile(r"时间|日期|created_at|updated_at|发布")
_NUMBER = re.compile(r"[¥￥]?\s*([0-9]+(?:\.[0-9]+)?)")


def rule_pick_first_by_preference(candidates: Iterable[str], preferences: Iterable[str]) -> str:
    """First candidate containing the earliest matching preference; else the first candidate."""
    names = [str(c) for c in candidates or [] if c]
    if not names:
        return ""
    for pref in preferences or []:
        hit = next((n for n in names if str(pref) in n), None)
        if hit is not None:
            return hit
    return names[0]


def _preferences(policy_overrides: Mapping[str, Any]) -> Dict[str, List[str]]:
    prefs = (policy_overrides or {}).get("field_name_preferences")
    if isinstance(prefs, Mapping):
        return FieldPreferencesCfg(**{k: v for k, v in prefs.items() if isinstance(v, list)}).model_dump()
    return FieldPreferencesCfg().model_dump()


def _entry(name: str, score: float, why: str) -> Dict[str, Any]:
    return {"name": name, "score": score, "why": why}


def _missing(name: str, role: str, data_type: str, meaning: str, values: str, explain: str) -> Dict[str, Any]:
    return {
        "name": name,
        "role": role,
        "data_type": data_type,
        "meaning": meaning,
        "range_or_values": values,
        "generate_from": ["title", "content_text"],
        "explain_template": explain,
    }


class HeuristicCollaborator:
    """
    Offline, deterministic stand-in for the AI collaborator. Recommends from
    the inferred scene, reranks by field-name preferences and derives missing
    fields from the fixed vocabularies and the note text.
    """

    source = "heuristic"

    async def recommend(self, req: RecommendRequest) -> RecommendResponse:
        field_names = [str(f.get("name")) for f in req.fields if f.get("name")]
        text = " ".join(
            field_names + [f"{n.get('title') or ''} {n.get('excerpt') or ''}" for n in req.notes_sample]
        )
        scene = infer_scene(text)
        prefs = _preferences(req.policy_overrides)
        time_field = rule_pick_first_by_preference([n for n in field_names if _TIME_NAME.search(n)], prefs["time"])
        time_cands = [_entry(time_field, 0.6, "可用于趋势/时间过滤")] if time_field else []
        known = set(field_names)
        log.info("heuristic recommend", extra={"scene": scene, "time_field": time_field})

        if scene == "content_collection":
            plan = {
                "time_field_candidates": time_cands,
                "dimension_candidates": [_entry("主题", 0.9, "用于统计关注点构成")],
                "metric_candidates": [_entry(COUNT_METRIC, 0.9, "按主题计数")],
                "selected": {"time_field": time_field, "dimension": "主题", "metric": COUNT_METRIC},
                "aggregation": "count",
                "time_granularity": "none",
                "missing_fields": [] if "主题" in known else [
                    _missing("主题", "dimension", "category", "文章主题分类",
                             "见 fixed_vocabularies 或 其他", "根据标题与正文关键词判断主题分类"),
                ],
            }
            return RecommendResponse.model_validate({
                "chart_type": "pie", "core_question": "我收集的内容主要关注哪些主题？",
                "field_plan": plan, "confidence": 0.55,
            })

        if scene == "accounting":
            missing = [
                _missing("记账类型", "dimension", "category", "支出/收入分类",
                         "见 fixed_vocabularies", "根据文本里的消费场景/商品判断类别"),
                _missing("金额", "metric", "number", "金额数值", ">=0", "从文本中提取金额（¥/￥/数字）"),
            ]
            plan = {
                "time_field_candidates": time_cands,
                "dimension_candidates": [_entry("记账类型", 0.9, "用于支出构成")],
                "metric_candidates": [_entry("金额", 0.8, "统计金额总和"), _entry(COUNT_METRIC, 0.5, "备选：统计条目数")],
                "selected": {"time_field": time_field, "dimension": "记账类型", "metric": "金额"},
                "aggregation": "sum",
                "time_granularity": "month",
                "missing_fields": [m for m in missing if m["name"] not in known],
            }
            return RecommendResponse.model_validate({
                "chart_type": "pie", "core_question": "我的支出主要花在什么类别？",
                "field_plan": plan, "confidence": 0.55,
            })

        # default: how often notes are recorded over time
        plan = {
            "time_field_candidates": [_entry(time_field, 0.8, "用于时间趋势")] if time_field else [],
            "dimension_candidates": [_entry(time_field, 0.8, "时间轴")] if time_field else [],
            "metric_candidates": [_entry(COUNT_METRIC, 0.9, "按时间聚合计数")],
            "selected": {"time_field": time_field, "dimension": time_field, "metric": COUNT_METRIC},
            "aggregation": "count",
            "time_granularity": "day",
            "missing_fields": [],
        }
        return RecommendResponse.model_validate({
            "chart_type": "line", "core_question": "最近记录/收集的频率如何变化？",
            "field_plan": plan, "confidence": 0.45,
        })

    async def rerank(self, req: RerankRequest) -> RerankResponse:
        chart_type = str(req.chart_type or "")
        if chart_type not in CHART_TYPES:
            raise CollaboratorResponseError("chart_type invalid")
        cands = req.candidate_fields or {}
        prefs = _preferences(req.policy_overrides)
        dims = list(cands.get("dimension") or [])
        dimension = rule_pick_first_by_preference(dims, prefs["topic"])
        second = list(cands.get("dimension2") or []) or [d for d in dims if d != dimension]
        selected = {
            "time_field": rule_pick_first_by_preference(cands.get("time") or [], prefs["time"]),
            "dimension_field": dimension,
            "dimension_field_2": second[0] if chart_type == "heatmap" and second else "",
            "metric_field": rule_pick_first_by_preference(cands.get("metric") or [], prefs["amount"]),
        }
        return RerankResponse.model_validate({
            "chart_type": chart_type, "selected_fields": selected,
            "why": "规则偏好兜底选择", "confidence": 0.2,
        })

    async def derive_fields(self, req: DeriveRequest) -> DeriveResponse:
        vocab = req.fixed_vocabularies or {}
        out: Dict[str, Dict[str, Any]] = {}
        for mf in req.missing_fields:
            name = str(mf.get("name") or "").strip()
            if not name:
                continue
            values: Dict[str, Any] = {}
            for note in req.notes:
                nid = str(note.get("id") or note.get("note_id") or "").strip()
                if not nid:
                    continue
                values[nid] = derive_value(mf.get("data_type"), vocab.get(name), note)
            out[name] = values
        return DeriveResponse(field_values=out)


def derive_value(data_type: Any, labels: Optional[Sequence[str]], note: Mapping[str, Any]) -> Any:
    """
    category: a vocabulary label mentioned in the note, else ``其他`` when the
    vocabulary has it, else its first label. number: the first number in the
    note, else 1. Anything else: None.
    """
    text = f"{note.get('title') or ''} {note.get('excerpt') or ''}"
    if data_type == "category":
        vocab = list(labels or ["其他"])
        hit = next((v for v in vocab if v != "其他" and v in text), None)
        if hit is not None:
            return hit
        return "其他" if "其他" in vocab else vocab[0]
    if data_type == "number":
        m = _NUMBER.search(text)
        return float(m.group(1)) if m else 1
    return None


__all__ = ["HeuristicCollaborator", "rule_pick_first_by_preference", "derive_value"]
