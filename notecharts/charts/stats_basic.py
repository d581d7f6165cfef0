from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Set, Tuple

import pandas as pd

from notecharts.dataset.builder import AnalysisDatum
from notecharts.dataset.shapes import as_key, is_missing

from .model import FieldStats


# ------------------------------ small helpers ------------------------------

def column(dataset: Sequence[AnalysisDatum], name: str) -> pd.Series:
    """Object Series of one field across the dataset; absent values are None."""
    return pd.Series([r.values.get(name) for r in dataset], dtype=object)


def present_mask(s: pd.Series) -> pd.Series:
    return ~s.map(is_missing).astype(bool)


def keys(s: pd.Series) -> pd.Series:
    """Stringified non-missing values (grouping/distinct key)."""
    return s[present_mask(s)].map(as_key)


def to_num(s: pd.Series) -> pd.Series:
    """
    Coerce to numeric with NaN on failure. Lists count their length; booleans
    are not numbers.

    Time: O(n).
    """
    def _one(v: Any) -> Any:
        if isinstance(v, bool) or v is None:
            return None
        if isinstance(v, (list, tuple)):
            return len(v)
        return v
    return pd.to_numeric(s.map(_one), errors="coerce")


# ------------------------------ field stats --------------------------------

def field_stats(dataset: Sequence[AnalysisDatum], name: str) -> FieldStats:
    """
    missing_rate = missing rows / rows, cardinality = distinct stringified
    non-missing values, top_share = most common value's rows / rows.

    An empty dataset reports missing_rate = 1.0 (no data is never "fully
    present"); the denominator still floors at 1.
    """
    n = len(dataset)
    if n == 0:
        return FieldStats(missing_rate=1.0, cardinality=0, top_share=0.0, n_rows=0)
    s = column(dataset, name)
    k = keys(s)
    missing = n - int(k.shape[0])
    total = max(n, 1)
    counts = k.value_counts(sort=True)
    top = int(counts.iloc[0]) if len(counts) else 0
    return FieldStats(
        missing_rate=missing / total,
        cardinality=int(counts.shape[0]),
        top_share=top / total,
        n_rows=n,
    )


def stats_for(dataset: Sequence[AnalysisDatum], names: Iterable[str]) -> Dict[str, FieldStats]:
    return {nm: field_stats(dataset, nm) for nm in names}


def distinct_values(dataset: Sequence[AnalysisDatum], name: str) -> Set[str]:
    return set(keys(column(dataset, name)).tolist())


def truthy_distinct(dataset: Sequence[AnalysisDatum], name: str) -> Set[str]:
    """Distinct values counting only truthy entries (0 and False do not form a time point)."""
    return {as_key(r.values.get(name)) for r in dataset if r.values.get(name)}


def pair_density(dataset: Sequence[AnalysisDatum], a: str, b: str) -> Tuple[float, int, int, int]:
    """
    Observed (a, b) combinations over the full cross-product of distinct a and
    b values, using only rows where both are present.

    Returns (density, n_pairs, n_a, n_b); density is 0.0 when no row has both.
    """
    pairs: Set[Tuple[str, str]] = set()
    seen_a: Set[str] = set()
    seen_b: Set[str] = set()
    for r in dataset:
        va, vb = r.values.get(a), r.values.get(b)
        if is_missing(va) or is_missing(vb):
            continue
        ka, kb = as_key(va), as_key(vb)
        seen_a.add(ka)
        seen_b.add(kb)
        pairs.add((ka, kb))
    cells = len(seen_a) * len(seen_b)
    density = len(pairs) / cells if cells else 0.0
    return density, len(pairs), len(seen_a), len(seen_b)


__all__: List[str] = [
    "column",
    "present_mask",
    "keys",
    "to_num",
    "field_stats",
    "stats_for",
    "distinct_values",
    "truthy_distinct",
    "pair_density",
]
