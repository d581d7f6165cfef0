from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Collection, Dict, Mapping, Optional, Sequence, Tuple
import logging

from notecharts.ai.contracts import RerankRequest, RerankResponse
from notecharts.config_model.model import GateConfig, SelectionCfg
from notecharts.dataset.builder import AnalysisDatum
from notecharts.fields.catalog import COUNT_METRIC
from notecharts.utils.fp import unique_stable

from .model import FieldSelection, FieldStats
from .stats_basic import stats_for

log = logging.getLogger("notecharts.select")

AXES: Tuple[str, ...] = ("time", "dimension", "metric")

RerankFn = Callable[[RerankRequest], Awaitable[RerankResponse]]


@dataclass(frozen=True)
class AxisPools:
    """Candidate field names per axis, in collaborator order."""
    time: Tuple[str, ...] = ()
    dimension: Tuple[str, ...] = ()
    metric: Tuple[str, ...] = ()

    @classmethod
    def of(cls, time: Sequence[str] = (), dimension: Sequence[str] = (), metric: Sequence[str] = ()) -> "AxisPools":
        def _clean(xs: Sequence[str]) -> Tuple[str, ...]:
            return tuple(unique_stable(str(x).strip() for x in xs or () if str(x or "").strip()))
        return cls(_clean(time), _clean(dimension), _clean(metric))

    def get(self, axis: str) -> Tuple[str, ...]:
        return getattr(self, axis)

    @property
    def total(self) -> int:
        return sum(len(self.get(a)) for a in AXES)

    def names(self) -> Tuple[str, ...]:
        return tuple(unique_stable(n for a in AXES for n in self.get(a)))

    def to_record(self) -> Dict[str, list]:
        return {a: list(self.get(a)) for a in AXES}


@dataclass(frozen=True)
class SelectionOutcome:
    selection: FieldSelection
    pools: AxisPools
    stats: Dict[str, FieldStats] = field(default_factory=dict)
    ambiguous: bool = False
    reranked: bool = False
    chart_type: Optional[str] = None  # set when a rerank answered
    error: str = ""


# ------------------------------ pure steps -----------------------------------

def restrict_to_known(pools: AxisPools, known: Optional[Collection[str]]) -> AxisPools:
    """Drop names the catalog does not hold; ``count`` stays a valid metric."""
    if known is None:
        return pools
    ok = set(known)
    return AxisPools(
        time=tuple(n for n in pools.time if n in ok),
        dimension=tuple(n for n in pools.dimension if n in ok),
        metric=tuple(n for n in pools.metric if n in ok or n == COUNT_METRIC),
    )


def filter_by_missing(
    pools: AxisPools,
    stats: Mapping[str, FieldStats],
    max_missing_rate: float,
) -> AxisPools:
    def _keep(name: str) -> bool:
        if name == COUNT_METRIC:
            return True
        s = stats.get(name)
        return s is not None and s.missing_rate <= max_missing_rate
    return AxisPools(*(tuple(n for n in pools.get(a) if _keep(n)) for a in AXES))


def is_ambiguous(pools: AxisPools, min_total: int = 4) -> bool:
    return pools.total >= min_total or any(len(pools.get(a)) > 1 for a in AXES)


def first_pick(pools: AxisPools, base: FieldSelection) -> FieldSelection:
    """
    First surviving candidate per axis. An axis with no survivors keeps the
    proposed value from ``base`` so the gates can judge it.
    """
    return FieldSelection(
        time=pools.time[0] if pools.time else base.time,
        dimension=pools.dimension[0] if pools.dimension else base.dimension,
        dimension2="",
        metric=pools.metric[0] if pools.metric else base.metric,
        aggregation=base.aggregation,
        time_granularity=base.time_granularity,
    )


def accept_rerank(pools: AxisPools, picked: FieldSelection, answer: RerankResponse) -> FieldSelection:
    """
    Overlay the reranker's choice per axis. A name outside that axis's
    surviving pool is ignored (the first pick stands); ``count`` is always a
    valid metric.
    """
    sf = answer.selected_fields

    def _axis(value: str, pool: Tuple[str, ...], current: str) -> str:
        if not value:
            return current
        if value in pool:
            return value
        log.debug("rerank named a field outside the pools", extra={"field": value})
        return current

    metric = sf.metric if sf.metric == COUNT_METRIC else _axis(sf.metric, pools.metric, picked.metric)
    dimension = _axis(sf.dimension, pools.dimension, picked.dimension)
    dim2 = sf.dimension2 if sf.dimension2 in pools.dimension and sf.dimension2 != dimension else ""
    return FieldSelection(
        time=_axis(sf.time, pools.time, picked.time),
        dimension=dimension,
        dimension2=dim2,
        metric=metric,
        aggregation=sf.aggregation or picked.aggregation,
        time_granularity=sf.time_granularity or picked.time_granularity,
    )


# ------------------------------ selector -------------------------------------

class FieldPlanSelector:
    """
    Resolve per-axis candidate pools to one field per axis.

    Candidates over the missing-rate threshold are removed first. Low ambiguity
    takes the first survivor per axis; high ambiguity asks the reranker, and
    an unreachable reranker falls back to the first-survivor selection.
    """

    def __init__(
        self,
        gates: Optional[GateConfig] = None,
        cfg: Optional[SelectionCfg] = None,
        rerank: Optional[RerankFn] = None,
    ) -> None:
        self.gates = gates or GateConfig()
        self.cfg = cfg or SelectionCfg()
        self.rerank = rerank

    def prepare(
        self,
        pools: AxisPools,
        dataset: Sequence[AnalysisDatum],
        known: Optional[Collection[str]] = None,
    ) -> Tuple[AxisPools, Dict[str, FieldStats]]:
        restricted = restrict_to_known(pools, known)
        names = [n for n in restricted.names() if n != COUNT_METRIC]
        stats = stats_for(dataset, names)
        return filter_by_missing(restricted, stats, self.gates.field_max_missing_rate), stats

    async def select(
        self,
        chart_type: str,
        pools: AxisPools,
        dataset: Sequence[AnalysisDatum],
        base: Optional[FieldSelection] = None,
        known: Optional[Collection[str]] = None,
        semantic_profile: Optional[Mapping[str, Any]] = None,
        policy_overrides: Optional[Mapping[str, Any]] = None,
        fixed_vocabularies: Optional[Mapping[str, Any]] = None,
    ) -> SelectionOutcome:
        base = base or FieldSelection()
        filtered, stats = self.prepare(pools, dataset, known)
        picked = first_pick(filtered, base)
        ambiguous = is_ambiguous(filtered, self.cfg.rerank_min_total)
        if not ambiguous or self.rerank is None:
            return SelectionOutcome(picked, filtered, stats, ambiguous=ambiguous)

        req = RerankRequest(
            chart_type=chart_type,
            candidate_fields=filtered.to_record(),
            field_stats={n: s.to_payload() for n, s in stats.items() if n in filtered.names()},
            semantic_profile=dict(semantic_profile or {}),
            policy_overrides=dict(policy_overrides or {}),
            fixed_vocabularies=dict(fixed_vocabularies or {}),
        )
        try:
            answer = await self.rerank(req)
        except Exception as e:
            msg = str(e) or type(e).__name__
            log.warning("rerank unavailable; using first surviving candidates", extra={"error": msg})
            return SelectionOutcome(picked, filtered, stats, ambiguous=True, error=msg)

        chosen = accept_rerank(filtered, picked, answer)
        log.info("rerank applied", extra={"selection": chosen.to_record()})
        return SelectionOutcome(
            chosen, filtered, stats, ambiguous=True, reranked=True, chart_type=answer.chart_type,
        )


__all__ = [
    "AXES",
    "AxisPools",
    "SelectionOutcome",
    "FieldPlanSelector",
    "restrict_to_known",
    "filter_by_missing",
    "is_ambiguous",
    "first_pick",
    "accept_rerank",
]
