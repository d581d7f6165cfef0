"""
Chart recommendation primitives.

- Immutable: dataclass(frozen=True, slots=True); candidates never change once
  generated.
- Deterministic ids: a readable slug over (chart type, sorted dimensions,
  metrics) so equal bindings collapse to one candidate.
- No dataframe deps here.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from notecharts.utils.ids import make_candidate_id

CHART_TYPES: Tuple[str, ...] = ("line", "bar", "pie", "heatmap")
# renderable through the aggregation engine; 'area' shares the 1-D path
RENDER_TYPES: Tuple[str, ...] = CHART_TYPES + ("area",)
AGGREGATIONS: Tuple[str, ...] = ("count", "sum", "avg", "none")
GRANULARITIES: Tuple[str, ...] = ("day", "week", "month", "none")


def normalize_chart_type(value: Any, default: str = "bar") -> str:
    s = str(value or "").strip().lower()
    return s if s in CHART_TYPES else default


def _as_tuple_str(seq: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    if not seq:
        return tuple()
    out: List[str] = []
    for x in seq:
        if x is None:
            continue
        s = str(x).strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)


def _clamp01(x: float) -> float:
    if x != x:  # NaN
        return 0.0
    return max(0.0, min(1.0, float(x)))


@dataclass(frozen=True, slots=True)
class FieldStats:
    missing_rate: float = 1.0
    cardinality: int = 0
    top_share: float = 0.0
    n_rows: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "missing_rate", _clamp01(self.missing_rate))
        object.__setattr__(self, "top_share", _clamp01(self.top_share))
        object.__setattr__(self, "cardinality", max(0, int(self.cardinality)))
        object.__setattr__(self, "n_rows", max(0, int(self.n_rows)))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "missing_rate": round(self.missing_rate, 4),
            "cardinality": self.cardinality,
            "top_share": round(self.top_share, 4),
        }


@dataclass(frozen=True, slots=True)
class ChartCandidate:
    """
    A proposed (chart type, field binding) pair, not yet validated by gates.

    ``id`` is derived from type + fields when not supplied.
    """

    chart_type: str
    required_dimensions: Tuple[str, ...] = field(default_factory=tuple)
    required_metrics: Tuple[str, ...] = field(default_factory=tuple)
    reason: str = ""
    title: str = ""
    id: str = ""

    def __post_init__(self) -> None:
        ct = str(self.chart_type or "").strip().lower()
        if ct not in RENDER_TYPES:
            raise ValueError(f"unknown chart type: {self.chart_type!r}")
        dims = _as_tuple_str(self.required_dimensions)
        mets = _as_tuple_str(self.required_metrics)
        object.__setattr__(self, "chart_type", ct)
        object.__setattr__(self, "required_dimensions", dims)
        object.__setattr__(self, "required_metrics", mets)
        if not (self.id or "").strip():
            object.__setattr__(self, "id", make_candidate_id(ct, dims, mets))

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chart_type": self.chart_type,
            "title": self.title,
            "required_dimensions": list(self.required_dimensions),
            "required_metrics": list(self.required_metrics),
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class FieldSelection:
    """One selected field per axis plus aggregation hints. Empty string = unset."""

    time: str = ""
    dimension: str = ""
    dimension2: str = ""
    metric: str = ""
    aggregation: str = "count"
    time_granularity: str = "none"

    def __post_init__(self) -> None:
        for k in ("time", "dimension", "dimension2", "metric"):
            object.__setattr__(self, k, str(getattr(self, k) or "").strip())
        agg = str(self.aggregation or "count").lower()
        gran = str(self.time_granularity or "none").lower()
        object.__setattr__(self, "aggregation", agg if agg in AGGREGATIONS else "count")
        object.__setattr__(self, "time_granularity", gran if gran in GRANULARITIES else "none")

    def merged(self, other: "FieldSelection | Mapping[str, Any]") -> "FieldSelection":
        """Overlay non-empty axes from ``other``; dimension2 is taken as-is."""
        o = other if isinstance(other, Mapping) else {
            "time": other.time, "dimension": other.dimension, "dimension2": other.dimension2,
            "metric": other.metric, "aggregation": other.aggregation,
            "time_granularity": other.time_granularity,
        }
        return replace(
            self,
            time=o.get("time") or self.time,
            dimension=o.get("dimension") or self.dimension,
            dimension2=o.get("dimension2") or "",
            metric=o.get("metric") or self.metric,
            aggregation=o.get("aggregation") or self.aggregation,
            time_granularity=o.get("time_granularity") or self.time_granularity,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "dimension": self.dimension,
            "dimension2": self.dimension2,
            "metric": self.metric,
            "aggregation": self.aggregation,
            "time_granularity": self.time_granularity,
        }


@dataclass(frozen=True, slots=True)
class GateResult:
    chart_type: str
    reason: str = ""
    # rule that fired: missing_rate | pie_cardinality | pie_flat | bar_topn | line_points | heatmap_dim2 | heatmap_density
    rule: str = ""
    # bar rendering must bucket into Top-N + Other
    top_n: Optional[int] = None
    count_metric: bool = False

    @property
    def downgraded(self) -> bool:
        return bool(self.reason) and self.rule != "bar_topn"


__all__ = [
    "CHART_TYPES",
    "RENDER_TYPES",
    "AGGREGATIONS",
    "GRANULARITIES",
    "normalize_chart_type",
    "FieldStats",
    "ChartCandidate",
    "FieldSelection",
    "GateResult",
]
