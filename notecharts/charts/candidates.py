from __future__ import annotations
from typing import Iterable, List, Optional, Sequence, Set

from notecharts.config_model.model import CandidatesCfg
from notecharts.dataset.builder import AnalysisDatum
from notecharts.fields.catalog import FieldDefinition
from notecharts.utils.ids import candidate_key

from .model import ChartCandidate
from .stats_basic import distinct_values


class _Collector:
    """Keeps first-seen order and drops repeat (type, sorted dims, metrics) keys."""

    def __init__(self) -> None:
        self.items: List[ChartCandidate] = []
        self._seen: Set[str] = set()

    def push(self, chart_type: str, dims: Sequence[str], metrics: Sequence[str], title: str, reason: str) -> None:
        if not dims or not metrics:
            return
        key = candidate_key(chart_type, dims, metrics)
        if key in self._seen:
            return
        self._seen.add(key)
        self.items.append(ChartCandidate(
            chart_type=chart_type,
            required_dimensions=tuple(dims),
            required_metrics=tuple(metrics),
            reason=reason,
            title=title,
        ))


def generate(
    fields: Iterable[FieldDefinition],
    dataset: Sequence[AnalysisDatum],
    cfg: Optional[CandidatesCfg] = None,
) -> List[ChartCandidate]:
    """
    Propose up to ``max_candidates`` chart candidates.

    Rules, in order: trend (date x metric -> line), comparison (category x
    metric -> bar), distribution (first category with 2..8 distinct raw values
    -> pie), cross-tab (first two categories -> heatmap), fallback (first
    dimension x first metric -> bar). Nothing is proposed without both a
    dimension and a metric. Output is deterministic for equal inputs.
    """
    c = cfg or CandidatesCfg()
    flds = list(fields or [])
    dims = [f for f in flds if f.role == "dimension"]
    metrics = [f for f in flds if f.role == "metric"]
    if not dims or not metrics:
        return []

    date_dims = [f for f in dims if f.data_type == "date"]
    cat_dims = [f for f in dims if f.data_type in ("category", "text")]
    top_metrics = metrics[: c.top_metrics]
    out = _Collector()

    # trend
    for d in date_dims:
        for m in top_metrics:
            out.push("line", [d.name], [m.name], f"{m.name}趋势", f"展示 {m.name} 随 {d.name} 的变化趋势")

    # comparison
    for d in cat_dims:
        for m in top_metrics:
            out.push("bar", [d.name], [m.name], f"{d.name}对比", f"比较不同 {d.name} 下 {m.name} 的差异")

    # distribution: checked against raw data, not FieldStats
    if cat_dims:
        pie_dim, pie_metric = cat_dims[0], top_metrics[0]
        n_cats = len(distinct_values(dataset, pie_dim.name))
        if c.pie_min_categories <= n_cats <= c.pie_max_categories:
            out.push(
                "pie", [pie_dim.name], [pie_metric.name],
                f"{pie_dim.name}占比", f"查看各 {pie_dim.name} 对 {pie_metric.name} 的占比构成",
            )

    # cross-tab
    if len(cat_dims) >= 2:
        a, b, m = cat_dims[0], cat_dims[1], metrics[0]
        out.push(
            "heatmap", [a.name, b.name], [m.name],
            f"{a.name}·{b.name}热力图", f"观察 {a.name} 与 {b.name} 组合下 {m.name} 的强度分布",
        )

    # fallback
    if not out.items:
        d, m = dims[0], metrics[0]
        out.push("bar", [d.name], [m.name], f"{m.name}概览", f"基于 {d.name} 展示 {m.name} 的对比")

    return out.items[: c.max_candidates]


__all__ = ["generate"]
