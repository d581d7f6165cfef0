from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
import logging
import re

from notecharts.fields.catalog import FieldCatalog, FieldDefinition, SystemFieldNames
from notecharts.utils.fp import take, unique_stable
from notecharts.utils.ids import name_variants, string_hash
from notecharts.utils.time import date_label, parse_any_datetime, to_naive_utc

from .shapes import is_missing, normalize_dimension, normalize_metric

log = logging.getLogger("notecharts.dataset")

_CJK_WORD = re.compile(r"[\u4e00-\u9fa5]{2,4}")
_LATIN_WORD = re.compile(r"[A-Za-z]{4,}")
_SCORE_FEN = re.compile(r"([0-9]{1,2}(?:\.[0-9]+)?)\s*分")
_SCORE_KV = re.compile(r"score\s*[:：]\s*([0-9]{1,2}(?:\.[0-9]+)?)", re.I)

MOOD_SOURCE_PRESETS = (
    ("工作", ("工作", "项目", "加班", "老板", "同事", "任务")),
    ("朋友", ("朋友", "同学", "聚会", "社交", "聊天")),
    ("家人", ("家人", "父母", "孩子", "家庭")),
    ("健康", ("健康", "身体", "锻炼", "运动", "生病")),
    ("成长", ("学习", "成长", "自我", "阅读")),
)


@dataclass
class AnalysisDatum:
    """One row per note: canonical date plus a dynamic field-name -> value map."""
    id: str
    date: datetime
    values: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def to_record(self) -> Dict[str, Any]:
        return {"id": self.id, "date": self.date.isoformat(), **self.values}


# ------------------------------ text helpers --------------------------------

def note_text(note: Mapping[str, Any]) -> str:
    parts = [note.get("title"), note.get("summary"), note.get("content"), note.get("content_text")]
    return " ".join(str(p) for p in parts if p)


def extract_keywords(text: str, limit: int = 8) -> List[str]:
    if not text:
        return []
    words = [w.strip() for w in _CJK_WORD.findall(text) + _LATIN_WORD.findall(text)]
    return take(limit, unique_stable(w for w in words if w))


def detect_score(text: str) -> Optional[float]:
    m = _SCORE_FEN.search(text) or _SCORE_KV.search(text)
    if not m:
        return None
    return min(10.0, max(1.0, float(m.group(1))))


def detect_mood_source(text: str) -> str:
    lowered = text.lower()
    for label, keywords in MOOD_SOURCE_PRESETS:
        if any(k in lowered or k in text for k in keywords):
            return label
    return "其他"


def score_bucket(score: float) -> str:
    if score >= 7:
        return "积极"
    if score >= 4:
        return "中性"
    return "消极"


def resolve_note_id(note: Mapping[str, Any], index: int) -> str:
    nid = note.get("note_id") or note.get("id")
    return str(nid) if nid not in (None, "") else f"note-{index}"


def note_datetime(note: Mapping[str, Any]) -> Optional[datetime]:
    return parse_any_datetime(note.get("created_at") or note.get("updated_at"))


def filter_notes_by_date(
    notes: Sequence[Mapping[str, Any]],
    date_range: Optional[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> List[Mapping[str, Any]]:
    """Keep notes whose created/updated time falls inside [from, to]; undated notes count as now."""
    dr = date_range or {}
    lo = parse_any_datetime(dr.get("from"))
    hi = parse_any_datetime(dr.get("to"))
    if lo is None and hi is None:
        return list(notes)
    ref = now or datetime.now()
    out = []
    for n in notes:
        t = to_naive_utc(note_datetime(n) or ref)
        if lo is not None and t < to_naive_utc(lo):
            continue
        if hi is not None and t > to_naive_utc(hi):
            continue
        out.append(n)
    return out


# ------------------------------ raw extraction -------------------------------

def extract_raw_value(
    note: Mapping[str, Any],
    fd: FieldDefinition,
    aliases: Optional[Mapping[str, str]] = None,
) -> Any:
    """
    Probe, in order: stable id, alias id, display name, whitespace-stripped and
    underscored name variants; component data first, then the note itself.
    A present key holding None still counts as a hit.
    """
    data = note.get("component_data") or note.get("componentData") or {}
    if not isinstance(data, Mapping):
        data = {}
    keys = [fd.id, (aliases or {}).get(fd.name), *name_variants(fd.name)]
    for key in keys:
        if not key:
            continue
        if key in data:
            return data[key]
        if key in note:
            return note[key]
    return None


def normalize_value(fd: FieldDefinition, raw: Any) -> Any:
    if raw is None:
        return None
    if fd.role == "metric":
        return normalize_metric(raw)
    return normalize_dimension(raw)


# ------------------------------ builder --------------------------------------

class DatasetBuilder:
    """
    Materialize one AnalysisDatum per note.

    The builder captures ``now`` once at construction so undated notes get the
    same fallback date on every rebuild; rebuilding with identical inputs
    yields an equal dataset in the same order.
    """

    def __init__(
        self,
        aliases: Optional[Mapping[str, str]] = None,
        system_names: Optional[SystemFieldNames] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.aliases = dict(aliases or {})
        self.system_names = system_names or SystemFieldNames()
        self.now = now or datetime.now()

    @classmethod
    def for_catalog(cls, catalog: FieldCatalog, now: Optional[datetime] = None) -> "DatasetBuilder":
        return cls(aliases=catalog.aliases, system_names=catalog.system_names, now=now)

    def _system_values(
        self,
        note: Mapping[str, Any],
        note_id: str,
        when: datetime,
        ai_values: Mapping[str, Mapping[str, Any]],
    ) -> Dict[str, Any]:
        names = self.system_names
        text = note_text(note)

        def _ai(key: str) -> Any:
            per_note = ai_values.get(key)
            if isinstance(per_note, Mapping) and note_id in per_note:
                return per_note[note_id]
            return None

        score = _ai("mood_score")
        score = float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else detect_score(text)
        if score is None:
            score = float(string_hash(note_id + text[:12]) % 10 + 1)
        score = round(score, 2)
        category = _ai("mood_category")
        source = _ai("mood_source")
        keywords = _ai("mood_keywords")
        return {
            names.date: date_label(when),
            names.score: score,
            names.category: str(category) if category is not None else score_bucket(score),
            names.source: str(source) if source is not None else detect_mood_source(text),
            names.keywords: list(keywords) if isinstance(keywords, list) and keywords else extract_keywords(text),
            names.text: text,
            names.title: note.get("title") or "",
            names.summary: note.get("summary") or "",
        }

    def build(
        self,
        notes: Iterable[Mapping[str, Any]],
        field_defs: Iterable[FieldDefinition] = (),
        ai_values: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> List[AnalysisDatum]:
        """
        ``ai_values`` optionally carries per-note system values already known
        from an earlier AI pass (``mood_score``, ``mood_category``,
        ``mood_source``, ``mood_keywords``, each keyed by note id); they take
        precedence over the text heuristics.
        """
        defs = [f for f in field_defs if f.source != "system"]
        rows: List[AnalysisDatum] = []
        for index, note in enumerate(notes or []):
            if not isinstance(note, Mapping):
                continue
            note_id = resolve_note_id(note, index)
            when = note_datetime(note) or self.now
            values = self._system_values(note, note_id, when, ai_values or {})
            for fd in defs:
                raw = extract_raw_value(note, fd, self.aliases)
                v = normalize_value(fd, raw)
                if is_missing(v):
                    continue
                values[fd.name] = v
            rows.append(AnalysisDatum(id=note_id, date=when, values=values))

        # sorted() is stable: equal dates keep input order
        rows = sorted(rows, key=lambda r: to_naive_utc(r.date))
        log.debug("dataset built", extra={"rows": len(rows), "fields": len(defs)})
        return rows


def backfill(
    dataset: Sequence[AnalysisDatum],
    field_values: Mapping[str, Mapping[str, Any]],
    field_defs: Iterable[FieldDefinition] = (),
) -> int:
    """
    Write AI-derived values into rows by note id, in place. Unknown note ids
    are ignored. Values go through the same role normalization as ``build``
    (fields without a definition are treated as dimensions); values that
    normalize to missing are not written.
    """
    by_id = {str(r.id): r for r in dataset}
    defs = {f.name: f for f in field_defs}
    written = 0
    for fname, per_note in (field_values or {}).items():
        if not isinstance(per_note, Mapping):
            continue
        fname = str(fname).strip()
        if not fname:
            continue
        fd = defs.get(fname) or FieldDefinition(fname, fname, "dimension", "text", "ai-derived")
        for note_id, value in per_note.items():
            row = by_id.get(str(note_id))
            if row is None:
                continue
            v = normalize_value(fd, value)
            if is_missing(v):
                continue
            row.values[fname] = v
            written += 1
    return written

