"""
Render-ready series for the final (chart type, fields) binding.

1-D path (bar, pie, line, area): group rows by the x field. The ``count``
metric counts rows; any other metric is averaged per bucket (2 decimals)
unless the selection asks for ``sum``. Date x fields can be bucketed by
day/week/month.

2-D path (heatmap): group by (dimension, dimension2); ``count`` counts
occurrences, any other metric is summed. Each cell carries an intensity in
[0, 1] for color mapping (0.5 everywhere when all cells are equal).

Every output is ordered by its labels/values, never by row order, so row
permutations yield the same series.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from notecharts.dataset.builder import AnalysisDatum
from notecharts.dataset.shapes import as_key, is_missing
from notecharts.fields.catalog import COUNT_METRIC
from notecharts.utils.time import bucket_label

from .model import RENDER_TYPES, FieldSelection
from .stats_basic import to_num

ORDERED_TYPES = ("line", "area")


@dataclass(frozen=True)
class SeriesPoint:
    label: str
    value: float
    n: int = 0


@dataclass(frozen=True)
class HeatCell:
    x: str
    y: str
    value: float
    intensity: float


@dataclass(frozen=True)
class RenderSeries:
    chart_type: str
    x_field: str = ""
    y_field: str = ""
    metric: str = COUNT_METRIC
    aggregation: str = "count"
    points: Tuple[SeriesPoint, ...] = field(default_factory=tuple)
    cells: Tuple[HeatCell, ...] = field(default_factory=tuple)
    x_labels: Tuple[str, ...] = field(default_factory=tuple)
    y_labels: Tuple[str, ...] = field(default_factory=tuple)
    min_value: float = 0.0
    max_value: float = 0.0
    other_bucketed: bool = False

    @property
    def empty(self) -> bool:
        return not self.points and not self.cells

    def to_record(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "chart_type": self.chart_type,
            "x_field": self.x_field,
            "metric": self.metric,
            "aggregation": self.aggregation,
        }
        if self.chart_type == "heatmap":
            out.update({
                "y_field": self.y_field,
                "x_labels": list(self.x_labels),
                "y_labels": list(self.y_labels),
                "min": self.min_value,
                "max": self.max_value,
                "cells": [
                    {"x": c.x, "y": c.y, "value": c.value, "intensity": c.intensity}
                    for c in self.cells
                ],
            })
        else:
            out["points"] = [{"label": p.label, "value": p.value, "n": p.n} for p in self.points]
            out["other_bucketed"] = self.other_bucketed
        return out


# ------------------------------ helpers --------------------------------------

def x_field_for(chart_type: str, sel: FieldSelection) -> str:
    """line/area plot along time when one is bound; everything else groups by the dimension."""
    if chart_type in ORDERED_TYPES:
        return sel.time or sel.dimension
    return sel.dimension or sel.time


def resolve_aggregation(metric: str, requested: str) -> str:
    if not metric or metric == COUNT_METRIC:
        return "count"
    return "sum" if requested == "sum" else "avg"


def _label(value: Any, granularity: str, bucket: bool) -> Optional[str]:
    if is_missing(value):
        return None
    if bucket:
        lbl = bucket_label(value, granularity)
        if lbl is not None:
            return lbl
    return as_key(value)


def _frame(dataset: Sequence[AnalysisDatum], x: str, metric: str, granularity: str, bucket: bool) -> pd.DataFrame:
    labels = [_label(r.values.get(x), granularity, bucket) for r in dataset]
    raw = pd.Series(
        [r.values.get(metric) if metric and metric != COUNT_METRIC else None for r in dataset],
        dtype=object,
    )
    df = pd.DataFrame({"key": labels, "num": to_num(raw)})
    return df[df["key"].notna()]


def _value(agg: str, n: int, total: float, n_num: int) -> float:
    if agg == "count":
        return float(n)
    if agg == "sum":
        return round(float(total), 2)
    return round(float(total) / n_num, 2) if n_num else 0.0


# ------------------------------ 1-D ------------------------------------------

def aggregate_1d(
    dataset: Sequence[AnalysisDatum],
    chart_type: str,
    sel: FieldSelection,
    top_n: Optional[int] = None,
    other_label: str = "其他",
) -> RenderSeries:
    x = x_field_for(chart_type, sel)
    agg = resolve_aggregation(sel.metric, sel.aggregation)
    metric = sel.metric or COUNT_METRIC
    if not x:
        return RenderSeries(chart_type, metric=metric, aggregation=agg)

    bucket = x == sel.time and sel.time_granularity in ("day", "week", "month")
    df = _frame(dataset, x, metric, sel.time_granularity, bucket)
    if df.empty:
        return RenderSeries(chart_type, x_field=x, metric=metric, aggregation=agg)

    g = df.groupby("key", sort=True).agg(
        n=("num", "size"), total=("num", "sum"), n_num=("num", "count"),
    ).reset_index()
    g["value"] = [_value(agg, int(r.n), r.total, int(r.n_num)) for r in g.itertuples()]

    if chart_type in ORDERED_TYPES:
        g = g.sort_values("key", kind="mergesort")
    else:
        g = g.sort_values(["value", "key"], ascending=[False, True], kind="mergesort")

    bucketed = False
    if top_n is not None and top_n > 0 and len(g) > top_n:
        head, tail = g.iloc[:top_n], g.iloc[top_n:]
        n, total, n_num = int(tail["n"].sum()), float(tail["total"].sum()), int(tail["n_num"].sum())
        other = pd.DataFrame([{
            "key": other_label, "n": n, "total": total, "n_num": n_num,
            "value": _value(agg, n, total, n_num),
        }])
        g = pd.concat([head, other], ignore_index=True)
        bucketed = True

    points = tuple(SeriesPoint(str(r.key), float(r.value), int(r.n)) for r in g.itertuples())
    return RenderSeries(
        chart_type, x_field=x, metric=metric, aggregation=agg,
        points=points, x_labels=tuple(p.label for p in points), other_bucketed=bucketed,
    )


# ------------------------------ 2-D ------------------------------------------

def aggregate_heatmap(dataset: Sequence[AnalysisDatum], sel: FieldSelection) -> RenderSeries:
    a, b = sel.dimension, sel.dimension2
    metric = sel.metric or COUNT_METRIC
    agg = "count" if metric == COUNT_METRIC else "sum"
    if not a or not b:
        return RenderSeries("heatmap", x_field=a, y_field=b, metric=metric, aggregation=agg)

    xs = [_label(r.values.get(a), "none", False) for r in dataset]
    ys = [_label(r.values.get(b), "none", False) for r in dataset]
    raw = pd.Series(
        [r.values.get(metric) if metric != COUNT_METRIC else None for r in dataset], dtype=object,
    )
    df = pd.DataFrame({"x": xs, "y": ys, "num": to_num(raw)}).dropna(subset=["x", "y"])
    if df.empty:
        return RenderSeries("heatmap", x_field=a, y_field=b, metric=metric, aggregation=agg)

    g = df.groupby(["x", "y"], sort=True).agg(n=("num", "size"), total=("num", "sum")).reset_index()
    values = g["n"].to_numpy(dtype=float) if agg == "count" else np.round(g["total"].to_numpy(dtype=float), 2)
    lo, hi = float(values.min()), float(values.max())
    span = hi - lo
    intensity = np.full(values.shape, 0.5) if span == 0 else np.round((values - lo) / span, 4)

    cells = tuple(
        HeatCell(str(x), str(y), float(v), float(t))
        for x, y, v, t in zip(g["x"], g["y"], values, intensity)
    )
    return RenderSeries(
        "heatmap", x_field=a, y_field=b, metric=metric, aggregation=agg, cells=cells,
        x_labels=tuple(sorted({c.x for c in cells})),
        y_labels=tuple(sorted({c.y for c in cells})),
        min_value=lo, max_value=hi,
    )


def aggregate(
    dataset: Sequence[AnalysisDatum],
    chart_type: str,
    fields: FieldSelection,
    top_n: Optional[int] = None,
    other_label: str = "其他",
) -> RenderSeries:
    ct = str(chart_type or "").strip().lower()
    ct = ct if ct in RENDER_TYPES else "bar"
    rows = list(dataset or [])
    if ct == "heatmap":
        return aggregate_heatmap(rows, fields)
    return aggregate_1d(rows, ct, fields, top_n=top_n, other_label=other_label)


__all__ = [
    "SeriesPoint",
    "HeatCell",
    "RenderSeries",
    "x_field_for",
    "resolve_aggregation",
    "aggregate_1d",
    "aggregate_heatmap",
    "aggregate",
]
