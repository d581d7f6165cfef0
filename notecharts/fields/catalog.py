"""
Field catalog: one set of uniquely named field definitions per analysis.

Notebook (user-authored) fields come from the notebook's component config,
system fields are derived from the dataset shape, AI-derived fields come from a
recommendation's ``missing_fields`` and custom fields are added on demand when
a chart binding names a field the catalog does not know yet.

``name`` is the join key everywhere; the catalog never holds two fields with
the same name (first registration wins).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Literal, Mapping, Optional, Tuple
import json
import logging
import re

from notecharts.utils.ids import make_field_id

log = logging.getLogger("notecharts.fields")

Role = Literal["dimension", "metric"]
DataType = Literal["date", "number", "text", "category"]
Source = Literal["notebook", "system", "ai-derived", "custom"]

ROLES: Tuple[str, ...] = ("dimension", "metric")
DATA_TYPES: Tuple[str, ...] = ("date", "number", "text", "category")
SOURCES: Tuple[str, ...] = ("notebook", "system", "ai-derived", "custom")

# notebook component type -> (role, dataType)
COMPONENT_ROLE_MAP: Dict[str, Tuple[str, str]] = {
    "date": ("dimension", "date"),
    "number": ("metric", "number"),
    "text-short": ("dimension", "text"),
    "text-long": ("dimension", "text"),
    "ai-custom": ("dimension", "text"),
    "image": ("dimension", "text"),
    "chart": ("metric", "number"),
}
_DEFAULT_ROLE = ("dimension", "text")
UNNAMED_FIELD = "未命名字段"
COUNT_METRIC = "count"

_MOOD_PAT = re.compile(r"情绪|心情|mood", re.I)


@dataclass(frozen=True, slots=True)
class FieldDefinition:
    id: str
    name: str
    role: str = "dimension"
    data_type: str = "text"
    source: str = "notebook"
    description: str = ""

    def __post_init__(self) -> None:
        name = (self.name or "").strip()
        if not name:
            raise ValueError("field name cannot be empty")
        role = self.role if self.role in ROLES else "dimension"
        dt = self.data_type if self.data_type in DATA_TYPES else "text"
        src = self.source if self.source in SOURCES else "custom"
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "role", role)
        object.__setattr__(self, "data_type", dt)
        object.__setattr__(self, "source", src)
        object.__setattr__(self, "id", (self.id or "").strip() or make_field_id(src, name))

    @property
    def is_metric(self) -> bool:
        return self.role == "metric"

    @property
    def is_date(self) -> bool:
        return self.role == "dimension" and self.data_type == "date"

    @property
    def is_categorical(self) -> bool:
        return self.role == "dimension" and self.data_type in ("category", "text")

    def to_payload(self, example: Any = None) -> Dict[str, Any]:
        """Shape sent to the recommend collaborator."""
        out: Dict[str, Any] = {
            "name": self.name,
            "role": self.role,
            "data_type": self.data_type,
            "source": self.source,
        }
        if example is not None:
            out["example"] = example
        return out


@dataclass(frozen=True, slots=True)
class SystemFieldNames:
    """Names of the system-derived columns; they depend on the notebook type."""
    date: str = "日期"
    score: str = "AI 评分"
    category: str = "AI 分类"
    source: str = "AI 来源"
    keywords: str = "AI 关键词"
    text: str = "文本内容"
    title: str = "标题"
    summary: str = "摘要"

    @staticmethod
    def for_notebook(notebook_type: Optional[str]) -> "SystemFieldNames":
        if isinstance(notebook_type, str) and _MOOD_PAT.search(notebook_type):
            return SystemFieldNames(
                score="情绪分数", category="情绪类别", source="情绪来源", keywords="情绪关键词",
            )
        return SystemFieldNames()


# ------------------------------ parsing ------------------------------------

def parse_component_config(raw: Any) -> List[Dict[str, Any]]:
    """
    Accept a JSON string, an object with ``componentInstances`` or a bare list.
    Anything unparseable yields an empty list.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            log.warning("component config is not valid JSON; ignoring")
            return []
    if isinstance(raw, Mapping):
        raw = raw.get("componentInstances") or raw.get("component_instances") or []
    if not isinstance(raw, list):
        return []
    return [c for c in raw if isinstance(c, Mapping)]


def notebook_fields(component_config: Any) -> Tuple[List[FieldDefinition], Dict[str, str]]:
    """Return (fields, name->id alias map) for a notebook's component config."""
    fields: List[FieldDefinition] = []
    aliases: Dict[str, str] = {}
    for comp in parse_component_config(component_config):
        ctype = str(comp.get("type") or "")
        title = str(comp.get("title") or "").strip()
        cid = str(comp.get("id") or "").strip()
        role, dt = COMPONENT_ROLE_MAP.get(ctype, _DEFAULT_ROLE)
        name = title or ctype or UNNAMED_FIELD
        if title and cid:
            aliases[title] = cid
        fields.append(FieldDefinition(id=cid, name=name, role=role, data_type=dt, source="notebook"))
    return fields, aliases


def system_fields(names: SystemFieldNames, is_mood: bool = False) -> List[FieldDefinition]:
    subject = "情绪" if is_mood else "AI"
    return [
        FieldDefinition("field-date", names.date, "dimension", "date", "system", "笔记创建日期（自动生成）"),
        FieldDefinition("field-mood-score", names.score, "metric", "number", "system", f"{subject} 推测的分值（1-10）"),
        FieldDefinition("field-mood-category", names.category, "dimension", "category", "system", "按分值区分的正向/中性/负向标签"),
        FieldDefinition("field-mood-source", names.source, "dimension", "category", "system", "根据文本提取的主要来源/场景"),
        FieldDefinition("field-keywords", names.keywords, "dimension", "text", "system", "高频关键词集合"),
    ]


def ai_derived_fields(missing_fields: Iterable[Mapping[str, Any]]) -> List[FieldDefinition]:
    out: List[FieldDefinition] = []
    for mf in missing_fields or []:
        if not isinstance(mf, Mapping):
            continue
        name = str(mf.get("name") or "").strip()
        if not name:
            continue
        role = "metric" if mf.get("role") == "metric" else "dimension"
        dt = mf.get("data_type")
        dt = dt if dt in ("number", "date", "category") else "text"
        desc = str(mf.get("meaning") or mf.get("explain_template") or "AI 生成字段")
        out.append(FieldDefinition(make_field_id("ai", name), name, role, dt, "ai-derived", desc))
    return out


# ------------------------------ catalog ------------------------------------

@dataclass
class FieldCatalog:
    fields: List[FieldDefinition] = field(default_factory=list)
    aliases: Dict[str, str] = field(default_factory=dict)
    system_names: SystemFieldNames = field(default_factory=SystemFieldNames)

    def __post_init__(self) -> None:
        incoming, self.fields = list(self.fields), []
        self.extend(incoming)

    def __iter__(self) -> Iterator[FieldDefinition]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def __contains__(self, name: object) -> bool:
        return any(f.name == name for f in self.fields)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> Optional[FieldDefinition]:
        return next((f for f in self.fields if f.name == name), None)

    def add(self, fd: FieldDefinition) -> bool:
        if fd.name in self:
            log.debug("duplicate field name dropped", extra={"field": fd.name, "source": fd.source})
            return False
        self.fields.append(fd)
        return True

    def extend(self, fds: Iterable[FieldDefinition]) -> int:
        return sum(1 for fd in fds if self.add(fd))

    def remove(self, name: str) -> bool:
        before = len(self.fields)
        self.fields = [f for f in self.fields if f.name != name]
        return len(self.fields) != before

    def ensure(self, name: str, role: str) -> FieldDefinition:
        """Return the named field, registering a custom one when it is unknown."""
        existing = self.get(name)
        if existing is not None:
            return existing
        fd = FieldDefinition(
            make_field_id("custom", name), name, role,
            "number" if role == "metric" else "text", "custom",
        )
        self.fields.append(fd)
        return fd

    def dimensions(self) -> List[FieldDefinition]:
        return [f for f in self.fields if f.role == "dimension"]

    def metrics(self) -> List[FieldDefinition]:
        return [f for f in self.fields if f.role == "metric"]

    def by_source(self, source: str) -> List[FieldDefinition]:
        return [f for f in self.fields if f.source == source]

    @classmethod
    def from_notebook(cls, component_config: Any, notebook_type: Optional[str] = None) -> "FieldCatalog":
        """Notebook fields first, then system fields whose names do not clash."""
        nb_fields, aliases = notebook_fields(component_config)
        names = SystemFieldNames.for_notebook(notebook_type)
        is_mood = names.score == "情绪分数"
        cat = cls(fields=nb_fields, aliases=aliases, system_names=names)
        cat.extend(system_fields(names, is_mood))
        return cat


__all__ = [
    "FieldDefinition",
    "FieldCatalog",
    "SystemFieldNames",
    "COMPONENT_ROLE_MAP",
    "COUNT_METRIC",
    "parse_component_config",
    "notebook_fields",
    "system_fields",
    "ai_derived_fields",
]
