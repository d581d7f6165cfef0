"""
Input/output contracts of the external AI collaborators (recommend,
derive-fields, rerank).

Responses are parsed permissively: unknown chart types become ``bar``,
malformed candidate or missing-field entries are dropped, confidences are
clamped to [0, 1]. Only structural shape is checked; adherence to
policy_overrides / fixed_vocabularies is the collaborator's business.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol
import json
import re

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from notecharts.charts.model import normalize_chart_type
from notecharts.utils.fp import clamp01


# ------------------------------- errors --------------------------------------

class CollaboratorError(RuntimeError):
    """Base class for collaborator failures."""


class CollaboratorUnavailable(CollaboratorError):
    """Transport failure, timeout or non-2xx status."""


class CollaboratorResponseError(CollaboratorError):
    """The collaborator answered but the payload is unusable."""


# ------------------------------- helpers -------------------------------------

_FENCE = re.compile(r"```(?:json)?")


def parse_json_text(text: Any) -> Optional[Dict[str, Any]]:
    """Parse a JSON object out of model output, tolerating code fences and prose around it."""
    if isinstance(text, dict):
        return text
    if not isinstance(text, str):
        return None
    cleaned = _FENCE.sub("", text).replace("```", "").strip()
    if not cleaned:
        return None
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except ValueError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _name_of(entry: Any) -> str:
    if isinstance(entry, str):
        return entry.strip()
    if isinstance(entry, dict):
        return str(entry.get("name") or "").strip()
    return ""


# ------------------------------- recommend -----------------------------------

class _Loose(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CandidateEntry(_Loose):
    name: str
    score: float = 0.0
    why: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> float:
        return clamp01(v)


def _candidate_list(v: Any) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for entry in v if isinstance(v, list) else []:
        name = _name_of(entry)
        if not name:
            continue
        if isinstance(entry, dict):
            out.append({**entry, "name": name, "why": str(entry.get("why") or "")})
        else:
            out.append({"name": name})
    return out


class MissingFieldSpec(_Loose):
    name: str
    role: str = "dimension"
    data_type: str = "text"
    meaning: str = ""
    range_or_values: str = ""
    generate_from: List[str] = []
    explain_template: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, v: Any) -> str:
        return "metric" if v == "metric" else "dimension"

    @field_validator("data_type", mode="before")
    @classmethod
    def _dtype(cls, v: Any) -> str:
        return v if v in ("number", "date", "category") else "text"

    @field_validator("range_or_values", "meaning", "explain_template", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else json.dumps(v, ensure_ascii=False)

    @field_validator("generate_from", mode="before")
    @classmethod
    def _sources(cls, v: Any) -> List[str]:
        return [str(x) for x in v] if isinstance(v, list) else []


class PlanSelection(_Loose):
    time: str = Field("", validation_alias=AliasChoices("time_field", "time"))
    dimension: str = Field("", validation_alias=AliasChoices("dimension", "dimension_field"))
    metric: str = Field("", validation_alias=AliasChoices("metric", "metric_field"))

    @field_validator("time", "dimension", "metric", mode="before")
    @classmethod
    def _s(cls, v: Any) -> str:
        return str(v or "").strip()


class FieldPlan(_Loose):
    time_field_candidates: List[CandidateEntry] = []
    dimension_candidates: List[CandidateEntry] = []
    metric_candidates: List[CandidateEntry] = []
    selected: PlanSelection = PlanSelection()
    missing_fields: List[MissingFieldSpec] = []
    aggregation: str = "count"
    time_granularity: str = "none"

    @field_validator("time_field_candidates", "dimension_candidates", "metric_candidates", mode="before")
    @classmethod
    def _cands(cls, v: Any) -> List[Dict[str, Any]]:
        return _candidate_list(v)

    @field_validator("missing_fields", mode="before")
    @classmethod
    def _missing(cls, v: Any) -> List[Dict[str, Any]]:
        if not isinstance(v, list):
            return []
        return [m for m in v if isinstance(m, dict) and str(m.get("name") or "").strip()]

    @field_validator("selected", mode="before")
    @classmethod
    def _sel(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, PlanSelection)) else {}

    @field_validator("aggregation", mode="before")
    @classmethod
    def _agg(cls, v: Any) -> str:
        return v if v in ("count", "sum", "avg", "none") else "count"

    @field_validator("time_granularity", mode="before")
    @classmethod
    def _gran(cls, v: Any) -> str:
        return v if v in ("day", "week", "month", "none") else "none"

    def names(self, axis: str) -> List[str]:
        pool = {
            "time": self.time_field_candidates,
            "dimension": self.dimension_candidates,
            "metric": self.metric_candidates,
        }[axis]
        return [c.name for c in pool]


class RecommendResponse(_Loose):
    chart_type: str = "bar"
    core_question: str = ""
    why: str = ""
    field_plan: FieldPlan = FieldPlan()
    confidence: float = 0.0

    @field_validator("chart_type", mode="before")
    @classmethod
    def _ct(cls, v: Any) -> str:
        return normalize_chart_type(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _conf(cls, v: Any) -> float:
        return clamp01(v)

    @field_validator("field_plan", mode="before")
    @classmethod
    def _fp(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, FieldPlan)) else {}

    @field_validator("core_question", "why", mode="before")
    @classmethod
    def _str(cls, v: Any) -> str:
        return str(v or "")


class RecommendRequest(_Loose):
    fields: List[Dict[str, Any]] = []
    notes_sample: List[Dict[str, Any]] = []
    semantic_profile: Dict[str, Any] = {}
    policy_overrides: Dict[str, Any] = {}
    fixed_vocabularies: Dict[str, List[str]] = {}
    exemplars: List[Dict[str, Any]] = []


# ------------------------------- derive --------------------------------------

class DeriveRequest(_Loose):
    missing_fields: List[Dict[str, Any]] = []
    notes: List[Dict[str, Any]] = []
    policy_overrides: Dict[str, Any] = {}
    fixed_vocabularies: Dict[str, List[str]] = {}
    exemplars: List[Dict[str, Any]] = []


class DeriveResponse(_Loose):
    field_values: Dict[str, Dict[str, Any]] = {}
    evidence: Dict[str, Any] = {}

    @field_validator("field_values", mode="before")
    @classmethod
    def _fv(cls, v: Any) -> Dict[str, Dict[str, Any]]:
        if not isinstance(v, dict):
            return {}
        return {str(k): {str(nid): val for nid, val in m.items()} for k, m in v.items() if isinstance(m, dict)}

    @field_validator("evidence", mode="before")
    @classmethod
    def _ev(cls, v: Any) -> Dict[str, Any]:
        return v if isinstance(v, dict) else {}


# ------------------------------- rerank --------------------------------------

class RerankRequest(_Loose):
    chart_type: str
    candidate_fields: Dict[str, List[str]] = {}
    field_stats: Dict[str, Dict[str, Any]] = {}
    semantic_profile: Dict[str, Any] = {}
    policy_overrides: Dict[str, Any] = {}
    fixed_vocabularies: Dict[str, List[str]] = {}
    exemplars: List[Dict[str, Any]] = []


class RerankSelection(_Loose):
    time: str = Field("", validation_alias=AliasChoices("time_field", "time"))
    dimension: str = Field("", validation_alias=AliasChoices("dimension_field", "dimension"))
    dimension2: str = Field("", validation_alias=AliasChoices("dimension_field_2", "dimension2"))
    metric: str = Field("", validation_alias=AliasChoices("metric_field", "metric"))
    aggregation: str = ""
    time_granularity: str = Field("", validation_alias=AliasChoices("time_granularity", "timeGranularity"))

    @field_validator("time", "dimension", "dimension2", "metric", "aggregation", "time_granularity", mode="before")
    @classmethod
    def _s(cls, v: Any) -> str:
        return str(v or "").strip()


class RerankResponse(_Loose):
    chart_type: str = "bar"
    selected_fields: RerankSelection = RerankSelection()
    why: str = ""
    confidence: float = 0.0

    @field_validator("chart_type", mode="before")
    @classmethod
    def _ct(cls, v: Any) -> str:
        return normalize_chart_type(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _conf(cls, v: Any) -> float:
        return clamp01(v)

    @field_validator("selected_fields", mode="before")
    @classmethod
    def _sf(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, RerankSelection)) else {}


# ------------------------------- protocol ------------------------------------

class Collaborator(Protocol):
    async def recommend(self, req: RecommendRequest) -> RecommendResponse: ...

    async def derive_fields(self, req: DeriveRequest) -> DeriveResponse: ...

    async def rerank(self, req: RerankRequest) -> RerankResponse: ...


__all__ = [
    "CollaboratorError",
    "CollaboratorUnavailable",
    "CollaboratorResponseError",
    "parse_json_text",
    "CandidateEntry",
    "MissingFieldSpec",
    "PlanSelection",
    "FieldPlan",
    "RecommendRequest",
    "RecommendResponse",
    "DeriveRequest",
    "DeriveResponse",
    "RerankRequest",
    "RerankSelection",
    "RerankResponse",
    "Collaborator",
]
