from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from notecharts.fields.catalog import COUNT_METRIC
from notecharts.utils.fp import take, unique_stable
from notecharts.utils.ids import make_variant_id

from .aggregate import x_field_for
from .model import CHART_TYPES, ChartCandidate, FieldSelection, normalize_chart_type
from .select import AxisPools

MAX_AXIS_CANDIDATES = 5
INSTANCE_AXES: Tuple[str, ...] = ("time", "dimension", "dimension2", "metric")

CHART_TYPE_LABELS = {"line": "折线图", "bar": "柱状图", "pie": "饼图", "heatmap": "热力图"}


def _pool(*groups: Iterable[str], limit: int = MAX_AXIS_CANDIDATES) -> Tuple[str, ...]:
    names = (str(n).strip() for g in groups for n in (g or ()) if str(n or "").strip())
    return tuple(take(limit, unique_stable(names)))


@dataclass(frozen=True, slots=True)
class ChartInstance:
    """
    A user-editable chart binding. Each axis has a candidate pool (at most
    five names) and a current selection; editing the selection never changes
    the pools.
    """

    id: str
    chart_type: str
    title: str = ""
    reason: str = ""
    pools: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    selected: FieldSelection = field(default_factory=FieldSelection)

    def pool(self, axis: str) -> Tuple[str, ...]:
        return self.pools.get(axis, ())

    def select(self, axis: str, name: str) -> "ChartInstance":
        if axis not in INSTANCE_AXES:
            raise ValueError(f"unknown axis: {axis!r}")
        if name not in self.pool(axis):
            raise ValueError(f"{name!r} is not a candidate for {axis}")
        return replace(self, selected=replace(self.selected, **{axis: name}))

    def with_chart_type(self, chart_type: str) -> "ChartInstance":
        ct = normalize_chart_type(chart_type)
        sel = self.selected
        if ct == "heatmap" and not sel.dimension2:
            second = next((n for n in self.pool("dimension2") if n != sel.dimension), "")
            sel = replace(sel, dimension2=second)
        return replace(self, chart_type=ct, selected=sel)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chart_type": self.chart_type,
            "title": self.title,
            "reason": self.reason,
            "pools": {a: list(self.pool(a)) for a in INSTANCE_AXES},
            "selected": self.selected.to_record(),
        }


def build_instance(
    candidate: ChartCandidate,
    pools: AxisPools,
    selection: FieldSelection,
    reason: str = "",
    limit: int = MAX_AXIS_CANDIDATES,
) -> ChartInstance:
    """
    Pools start from the candidate's own fields and continue with the
    filtered axis pools. A heatmap splits its first two dimensions into the
    dimension and dimension2 pools.
    """
    dims = candidate.required_dimensions
    metrics = candidate.required_metrics
    if candidate.chart_type == "heatmap":
        dim_pool = _pool(dims[:1], [selection.dimension], pools.dimension, limit=limit)
        dim2_pool = _pool(dims[1:2], [selection.dimension2], pools.dimension, limit=limit)
    else:
        dim_pool = _pool(dims, [selection.dimension], pools.dimension, limit=limit)
        dim2_pool = _pool(pools.dimension, limit=limit)
    inst_pools = {
        "time": _pool([selection.time], pools.time, limit=limit),
        "dimension": dim_pool,
        "dimension2": dim2_pool,
        "metric": _pool(metrics, [selection.metric], pools.metric, limit=limit),
    }
    return ChartInstance(
        id=candidate.id,
        chart_type=candidate.chart_type,
        title=candidate.title,
        reason=reason or candidate.reason,
        pools=inst_pools,
        selected=selection,
    )


def _variant_dims(chart_type: str, sel: FieldSelection, pools: AxisPools) -> List[str]:
    if chart_type == "heatmap":
        first = sel.dimension or (pools.dimension[0] if pools.dimension else "")
        second = sel.dimension2 or next((n for n in pools.dimension if n != first), "")
        return [first, second] if first and second else []
    x = x_field_for(chart_type, sel) or next(iter(pools.dimension + pools.time), "")
    return [x] if x else []


def build_variants(
    chart_type: str,
    selection: FieldSelection,
    pools: AxisPools,
    why: str = "",
    title: str = "",
) -> List[ChartCandidate]:
    """
    The recommended binding first, then one variant per other chart type over
    the same fields. A type that cannot be bound (heatmap without a second
    dimension) is skipped.
    """
    ct = normalize_chart_type(chart_type)
    metric = selection.metric or COUNT_METRIC
    out: List[ChartCandidate] = []
    for t in [ct] + [x for x in CHART_TYPES if x != ct]:
        dims = _variant_dims(t, selection, pools)
        if not dims:
            continue
        suffix = "AI 推荐" if t == ct else f"可切换为{CHART_TYPE_LABELS[t]}查看同一组字段的不同视图"
        out.append(ChartCandidate(
            chart_type=t,
            required_dimensions=tuple(dims),
            required_metrics=(metric,),
            reason="；".join(x for x in (why, suffix) if x),
            title=title or "AI 推荐图表",
            id=make_variant_id(t, dims, metric),
        ))
    return out


def variant_selection(candidate: ChartCandidate, base: FieldSelection) -> FieldSelection:
    """Selection implied by a variant candidate, keeping the base hints."""
    dims: Sequence[str] = candidate.required_dimensions
    metric = candidate.required_metrics[0] if candidate.required_metrics else base.metric
    if candidate.chart_type == "heatmap":
        return replace(base, dimension=dims[0], dimension2=dims[1] if len(dims) > 1 else "", metric=metric)
    if candidate.chart_type == "line" and base.time and dims and dims[0] == base.time:
        return replace(base, dimension2="", metric=metric)
    return replace(base, dimension=dims[0] if dims else base.dimension, dimension2="", metric=metric)


__all__ = [
    "MAX_AXIS_CANDIDATES",
    "INSTANCE_AXES",
    "ChartInstance",
    "build_instance",
    "build_variants",
    "variant_selection",
]
