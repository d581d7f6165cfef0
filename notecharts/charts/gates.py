from __future__ import annotations
from typing import Any, Mapping, Optional, Sequence
import logging

from notecharts.config_model.model import GateConfig
from notecharts.dataset.builder import AnalysisDatum
from notecharts.fields.catalog import COUNT_METRIC

from .model import FieldSelection, GateResult, normalize_chart_type
from .stats_basic import field_stats, pair_density, truthy_distinct

log = logging.getLogger("notecharts.gates")

REASON_MISSING = "字段缺失率过高，降级为频次柱状图"
REASON_PIE_TOPN = "饼图类别过多，降级为柱状图（TopN + 其他）"
REASON_PIE_FLAT = "类别过多且占比均匀，饼图不可读，降级为柱状图"
REASON_BAR_TOPN = "类别过多，柱状图将使用 TopN + 其他"
REASON_LINE_POINTS = "时间点过少，不适合折线，降级为柱状图"
REASON_HEATMAP_DIM2 = "热力图缺少第二维度，降级为柱状图"
REASON_HEATMAP_SPARSE = "热力图过稀疏，不可读，降级为柱状图"


def _as_selection(selection: Any) -> FieldSelection:
    if isinstance(selection, FieldSelection):
        return selection
    if isinstance(selection, Mapping):
        return FieldSelection(**{k: v for k, v in selection.items() if k in FieldSelection.__slots__})
    return FieldSelection()


def _evaluate(chart_type: str, dataset: Sequence[AnalysisDatum], sel: FieldSelection, gates: GateConfig) -> GateResult:
    dim_stats = field_stats(dataset, sel.dimension) if sel.dimension else None
    time_stats = field_stats(dataset, sel.time) if sel.time else None
    metric_stats = (
        field_stats(dataset, sel.metric) if sel.metric and sel.metric != COUNT_METRIC else None
    )

    # 1. missing rate on any bound axis -> row-count bar
    for s in (dim_stats, time_stats, metric_stats):
        if s is not None and s.missing_rate > gates.field_max_missing_rate:
            return GateResult("bar", REASON_MISSING, rule="missing_rate", count_metric=True)

    # 2. pie readability
    if chart_type == "pie" and dim_stats is not None:
        if dim_stats.cardinality > gates.pie_topn:
            return GateResult("bar", REASON_PIE_TOPN, rule="pie_cardinality")
        if dim_stats.cardinality > gates.pie_max_cardinality and dim_stats.top_share < gates.pie_min_top_share:
            return GateResult("bar", REASON_PIE_FLAT, rule="pie_flat")

    # 3. bar keeps its type but must bucket the tail
    if chart_type == "bar" and dim_stats is not None:
        if dim_stats.cardinality > gates.bar_max_categories:
            return GateResult("bar", REASON_BAR_TOPN, rule="bar_topn", top_n=gates.bar_max_categories)

    # 4. too few time points for a line
    if chart_type == "line":
        axis = sel.time or sel.dimension
        points = len(truthy_distinct(dataset, axis)) if axis else 0
        if points < gates.line_min_points:
            return GateResult("bar", REASON_LINE_POINTS, rule="line_points")

    # 5. heatmap needs two dimensions and enough filled cells
    if chart_type == "heatmap":
        if not sel.dimension or not sel.dimension2:
            return GateResult("bar", REASON_HEATMAP_DIM2, rule="heatmap_dim2")
        density, _, _, _ = pair_density(dataset, sel.dimension, sel.dimension2)
        if density < gates.heatmap_min_density:
            return GateResult("bar", REASON_HEATMAP_SPARSE, rule="heatmap_density")

    return GateResult(chart_type, "")


def evaluate(
    chart_type: Any,
    dataset: Sequence[AnalysisDatum],
    selection: Any,
    gates: Optional[GateConfig] = None,
) -> GateResult:
    """
    Validate ``chart_type`` against the gate thresholds and downgrade when the
    binding would not render readably. First matching rule wins.

    Total: unknown chart types are treated as ``bar``; any failure while
    reading the data degrades to a row-count ``bar`` rather than raising.
    """
    ct = normalize_chart_type(chart_type)
    sel = _as_selection(selection)
    g = gates or GateConfig()
    try:
        result = _evaluate(ct, list(dataset or []), sel, g)
    except Exception:  # absorb any data-quality surprise as a safe chart
        log.exception("gate evaluation failed; falling back to bar", extra={"chart_type": ct})
        return GateResult("bar", REASON_MISSING, rule="missing_rate", count_metric=True)
    if result.reason:
        log.info(
            "gate fired",
            extra={"rule": result.rule, "from_type": ct, "to_type": result.chart_type},
        )
    return result


__all__ = [
    "evaluate",
    "REASON_MISSING",
    "REASON_PIE_TOPN",
    "REASON_PIE_FLAT",
    "REASON_BAR_TOPN",
    "REASON_LINE_POINTS",
    "REASON_HEATMAP_DIM2",
    "REASON_HEATMAP_SPARSE",
]
