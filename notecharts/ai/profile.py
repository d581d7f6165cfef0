"""
Semantic profile of a note selection and few-shot exemplar selection.

The profile (top keywords + field names) is sent to every collaborator and is
also what exemplars are matched against: +3 when the exemplar targets the
requested chart type, +1 per exemplar keyword found in the keywords or field
names, +1 per field signal found in the field names. Only exemplars scoring
above zero are used.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
import re

from notecharts.dataset.builder import resolve_note_id
from notecharts.utils.fp import frequencies, take

_CJK_WORD = re.compile(r"[\u4e00-\u9fa5]{2,4}")
_LATIN_WORD = re.compile(r"[A-Za-z]{4,}")

SCENES = ("accounting", "fitness", "mood", "content_collection", "generic")

# checked in order; first scene with a hit wins
SCENE_KEYWORDS = (
    ("accounting", ("记账", "支出", "收入", "¥", "￥", "消费", "报销")),
    ("fitness", ("健身", "训练", "跑步", "瑜伽", "游泳", "力量", "运动", "打卡")),
    ("mood", ("心情", "情绪", "焦虑", "开心", "难过", "抑郁", "压力")),
    ("content_collection", ("ai", "模型", "openai", "claude", "应用", "工具", "新闻", "发布", "产品", "插件")),
)


EXEMPLARS_RECOMMEND: List[Dict[str, Any]] = [
    {
        "name": "ai_news_topic_distribution",
        "when": {
            "keywords": ["AI", "模型", "应用", "工具", "新闻", "发布", "OpenAI", "Claude"],
            "field_signals": ["标题", "内容", "来源", "created_at", "发布时间", "关键词"],
        },
        "input_example": {
            "fields": ["标题", "内容", "来源平台", "笔记创建时间", "关键词"],
            "notes_sample": [
                {"title": "OpenAI 发布新功能...", "excerpt": "AI 应用/工具/插件...", "created_at": "2025-12-01"},
                {"title": "某公司推出AI助手", "excerpt": "应用场景...", "created_at": "2025-12-02"},
            ],
        },
        "output_example": {
            "core_question": "我收集的 AI 内容主要集中在哪些主题？",
            "chart_type": "pie",
            "field_plan": {
                "selected": {"dimension": "主题", "metric": "count"},
                "missing_fields": [{
                    "name": "主题",
                    "role": "dimension",
                    "data_type": "category",
                    "range_or_values": "模型/工具/应用/行业/研究/其他",
                    "generate_from": ["title", "content_text"],
                }],
                "aggregation": "count",
                "time_granularity": "none",
            },
        },
    },
]

EXEMPLARS_CONFIG: List[Dict[str, Any]] = [
    {
        "name": "mood_line_trend",
        "when": {"chart_type": "line", "keywords": ["心情", "情绪"]},
        "input_example": {
            "chart_type": "line",
            "candidate_fields": {
                "time": ["日期", "笔记创建时间", "发布时间"],
                "metric": ["情绪分数", "count"],
            },
        },
        "output_example": {
            "selected_fields": {
                "time_field": "日期",
                "metric_field": "情绪分数",
                "aggregation": "avg",
                "time_granularity": "day",
            },
            "why": "用日期对齐时间序列，用情绪分数量化强度，表达情绪随时间变化。",
        },
    },
]

EXEMPLARS_DERIVE_FIELDS: List[Dict[str, Any]] = [
    {
        "name": "derive_topic_fixed_vocab",
        "when": {"field_name": "主题", "data_type": "category"},
        "definition_example": {
            "name": "主题",
            "values": ["模型", "工具", "应用", "行业", "研究", "其他"],
            "generate_from": ["title", "content_text"],
        },
        "io_example": {
            "note": {"id": "n1", "title": "AI 插件推荐", "excerpt": "提升效率的工具..."},
            "output": {"主题": "工具", "evidence": "工具/插件/效率"},
        },
    },
]


# ------------------------------ note payloads --------------------------------

def note_excerpt(note: Mapping[str, Any], chars: int) -> str:
    return str(note.get("content_text") or note.get("content") or "")[: max(0, chars)]


def notes_sample(notes: Sequence[Mapping[str, Any]], size: int = 24, chars: int = 220) -> List[Dict[str, Any]]:
    """First ``size`` notes as {id, title, excerpt, created_at} for the recommend call."""
    return [
        {
            "id": resolve_note_id(n, i),
            "title": n.get("title") or "",
            "excerpt": note_excerpt(n, chars),
            "created_at": n.get("created_at") or n.get("updated_at") or "",
        }
        for i, n in enumerate(take(size, notes))
    ]


def derive_notes(notes: Sequence[Mapping[str, Any]], limit: int = 220, chars: int = 400) -> List[Dict[str, Any]]:
    return [
        {"id": resolve_note_id(n, i), "title": n.get("title") or "", "excerpt": note_excerpt(n, chars)}
        for i, n in enumerate(take(limit, notes))
    ]


# ------------------------------ profile --------------------------------------

def tokenize(text: str) -> List[str]:
    # CJK runs first, then Latin words
    return [t.strip() for t in _CJK_WORD.findall(text) + _LATIN_WORD.findall(text) if t.strip()]


def build_semantic_profile(
    sample: Iterable[Mapping[str, Any]],
    field_names: Iterable[str],
    top_k: int = 20,
) -> Dict[str, List[str]]:
    """Top-``top_k`` tokens by frequency (ties keep first appearance) plus field names."""
    text = "\n".join(f"{s.get('title') or ''} {s.get('excerpt') or ''}".strip() for s in sample)
    freq = frequencies(tokenize(text))
    ranked = sorted(freq.items(), key=lambda kv: -kv[1])  # stable
    return {
        "keywords": [k for k, _ in ranked[:top_k]],
        "field_names": [n for n in field_names if n],
    }


def infer_scene(text: str) -> str:
    t = (text or "").lower()
    for scene, words in SCENE_KEYWORDS:
        if any(w.lower() in t for w in words):
            return scene
    return "generic"


# ------------------------------ exemplars ------------------------------------

def score_exemplar(
    exemplar: Mapping[str, Any],
    profile: Optional[Mapping[str, Any]] = None,
    chart_type: Optional[str] = None,
) -> int:
    p = profile or {}
    keywords = [str(k) for k in p.get("keywords") or []]
    fields = [str(f) for f in p.get("field_names") or []]
    when = exemplar.get("when") or {}
    score = 0

    if chart_type and when.get("chart_type") == chart_type:
        score += 3

    for kw in when.get("keywords") or []:
        needle = str(kw).lower()
        if needle and any(needle in k.lower() for k in keywords + fields):
            score += 1

    for sig in when.get("field_signals") or []:
        if sig and any(str(sig) in f for f in fields):
            score += 1

    if when.get("field_name") and when["field_name"] in fields:
        score += 1

    return score


def select_top_exemplars(
    pool: Sequence[Mapping[str, Any]],
    profile: Optional[Mapping[str, Any]] = None,
    chart_type: Optional[str] = None,
    limit: int = 3,
) -> List[Dict[str, Any]]:
    scored = [(score_exemplar(ex, profile, chart_type), i, ex) for i, ex in enumerate(pool or [])]
    ranked = sorted((s for s in scored if s[0] > 0), key=lambda s: (-s[0], s[1]))
    return [dict(ex) for _, _, ex in ranked[: max(0, limit)]]


__all__ = [
    "SCENES",
    "EXEMPLARS_RECOMMEND",
    "EXEMPLARS_CONFIG",
    "EXEMPLARS_DERIVE_FIELDS",
    "note_excerpt",
    "notes_sample",
    "derive_notes",
    "tokenize",
    "build_semantic_profile",
    "infer_scene",
    "score_exemplar",
    "select_top_exemplars",
]
