"""
Async analysis pipeline.

    notes -> FieldCatalog + DatasetBuilder -> dataset
          -> recommend (fatal on failure)
          -> derive-fields (only when fields are missing; best-effort)
          -> FieldPlanSelector (rerank only when ambiguous; best-effort)
          -> QualityGateEvaluator -> variants + ChartInstance
          -> AggregationEngine -> render-ready series

One RunContext is shared by every run of a session. It holds the stage
machine, the single-slot {run_key, result} cache and the key of the newest
run. A run whose key is no longer the newest drops whatever its collaborator
calls return and never touches the stage again.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging

from notecharts.ai.contracts import (
    Collaborator,
    DeriveRequest,
    RecommendRequest,
    RecommendResponse,
    RerankRequest,
    RerankResponse,
)
from notecharts.ai.profile import (
    EXEMPLARS_CONFIG,
    EXEMPLARS_DERIVE_FIELDS,
    EXEMPLARS_RECOMMEND,
    build_semantic_profile,
    derive_notes,
    notes_sample,
    select_top_exemplars,
)
from notecharts.charts import candidates as candidate_gen
from notecharts.charts.aggregate import RenderSeries, aggregate
from notecharts.charts.gates import evaluate
from notecharts.charts.instance import ChartInstance, build_instance, build_variants, variant_selection
from notecharts.charts.model import ChartCandidate, FieldSelection, FieldStats, GateResult
from notecharts.charts.select import AxisPools, FieldPlanSelector
from notecharts.config_model.model import RootCfg
from notecharts.dataset.builder import (
    AnalysisDatum,
    DatasetBuilder,
    backfill,
    filter_notes_by_date,
    resolve_note_id,
)
from notecharts.dataset.shapes import is_missing
from notecharts.fields.catalog import COUNT_METRIC, FieldCatalog, FieldDefinition, ai_derived_fields
from notecharts.utils.ids import make_run_key

from .stage import Stage, StageMachine

log = logging.getLogger("notecharts.pipeline")


class AnalysisError(RuntimeError):
    """The run could not produce a chart; the message is the collaborator's, verbatim."""


# ------------------------------ inputs / outputs ------------------------------

@dataclass
class AnalysisRequest:
    notes: Sequence[Mapping[str, Any]]
    notebook_id: str = ""
    notebook_type: Optional[str] = None
    component_config: Any = None
    date_range: Optional[Mapping[str, Any]] = None
    template_id: Optional[str] = None
    ai_values: Optional[Mapping[str, Mapping[str, Any]]] = None

    def note_ids(self) -> List[str]:
        return [resolve_note_id(n, i) for i, n in enumerate(self.notes)]

    def run_key(self) -> str:
        return make_run_key(self.notebook_id, self.note_ids(), self.date_range, self.template_id)


@dataclass
class AnalysisResult:
    run_key: str
    chart_type: str
    recommended_type: str
    core_question: str
    reason: str
    selection: FieldSelection
    gate: GateResult
    variants: List[ChartCandidate]
    suggestions: List[ChartCandidate]
    instance: Optional[ChartInstance]
    series: RenderSeries
    fields: List[FieldDefinition]
    stats: Dict[str, FieldStats]
    dataset: List[AnalysisDatum] = field(repr=False, default_factory=list)
    reranked: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "run_key": self.run_key,
            "chart_type": self.chart_type,
            "recommended_type": self.recommended_type,
            "core_question": self.core_question,
            "reason": self.reason,
            "selection": self.selection.to_record(),
            "gate": {"rule": self.gate.rule, "reason": self.gate.reason, "top_n": self.gate.top_n},
            "reranked": self.reranked,
            "variants": [c.to_record() for c in self.variants],
            "suggestions": [c.to_record() for c in self.suggestions],
            "instance": self.instance.to_record() if self.instance else None,
            "series": self.series.to_record(),
            "fields": [f.to_payload() for f in self.fields],
            "field_stats": {k: v.to_payload() for k, v in self.stats.items()},
            "rows": len(self.dataset),
            "warnings": list(self.warnings),
        }


@dataclass
class RunCache:
    """Only the most recent completed run is kept."""
    key: Optional[str] = None
    result: Optional[AnalysisResult] = None

    def get(self, key: str) -> Optional[AnalysisResult]:
        return self.result if self.key == key else None

    def store(self, key: str, result: AnalysisResult) -> None:
        self.key, self.result = key, result


@dataclass
class RunContext:
    stage: StageMachine = field(default_factory=StageMachine)
    cache: RunCache = field(default_factory=RunCache)
    current_key: Optional[str] = None
    error: str = ""

    @property
    def last_good(self) -> Optional[AnalysisResult]:
        return self.cache.result

    def is_stale(self, key: str) -> bool:
        return self.current_key != key


# ------------------------------ helpers --------------------------------------

def _example(dataset: Sequence[AnalysisDatum], name: str) -> Any:
    return next((r.values[name] for r in dataset if not is_missing(r.values.get(name))), None)


def _base_selection(rec: RecommendResponse) -> FieldSelection:
    fp = rec.field_plan
    return FieldSelection(
        time=fp.selected.time,
        dimension=fp.selected.dimension,
        metric=fp.selected.metric,
        aggregation=fp.aggregation,
        time_granularity=fp.time_granularity,
    )


def _fallback_plan(suggestion: ChartCandidate, catalog: FieldCatalog) -> FieldSelection:
    dims = list(suggestion.required_dimensions)
    first = catalog.get(dims[0]) if dims else None
    is_time = first is not None and first.is_date
    return FieldSelection(
        time=dims[0] if is_time else "",
        dimension=dims[0] if dims and not is_time else "",
        dimension2=dims[1] if suggestion.chart_type == "heatmap" and len(dims) > 1 else "",
        metric=suggestion.required_metrics[0] if suggestion.required_metrics else COUNT_METRIC,
    )


# ------------------------------ pipeline -------------------------------------

class AnalysisPipeline:
    def __init__(
        self,
        cfg: RootCfg,
        collaborator: Collaborator,
        context: Optional[RunContext] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.cfg = cfg
        self.collaborator = collaborator
        self.context = context or RunContext()
        self.now = now or datetime.now()

    @property
    def stage(self) -> StageMachine:
        return self.context.stage

    async def run(self, request: AnalysisRequest) -> Optional[AnalysisResult]:
        """
        Run (or reuse) one analysis pass.

        Returns None when the selection is empty after date filtering or when
        a newer run superseded this one. Raises AnalysisError when recommend
        fails; the previous result stays cached.
        """
        ctx = self.context
        key = request.run_key()
        cached = ctx.cache.get(key)
        if cached is not None:
            # still the newest request: any run in flight is now stale
            ctx.current_key = key
            log.info("run-key unchanged; reusing result", extra={"run_key": key})
            if self.stage.busy and self.stage.can(Stage.READY):
                self.stage.advance(Stage.READY, "分析完成", run_key=key)
            return cached

        ctx.current_key = key
        ctx.error = ""
        self.stage.advance(Stage.LOADING, "加载笔记与字段", run_key=key)
        try:
            return await self._run(request, key)
        except AnalysisError:
            raise
        except Exception as e:
            if not ctx.is_stale(key):
                ctx.error = str(e)
                self.stage.fail(str(e))
            raise

    async def _run(self, request: AnalysisRequest, key: str) -> Optional[AnalysisResult]:
        ctx, cfg = self.context, self.cfg
        notes = filter_notes_by_date(request.notes, request.date_range, now=self.now)
        if not notes:
            self.stage.advance(Stage.IDLE, "没有可分析的笔记")
            return None

        catalog = FieldCatalog.from_notebook(request.component_config, request.notebook_type)
        dataset = DatasetBuilder.for_catalog(catalog, now=self.now).build(notes, catalog.fields, request.ai_values)
        suggestions = candidate_gen.generate(catalog.fields, dataset, cfg.candidates)
        sample = notes_sample(notes, cfg.dataset.notes_sample_size, cfg.dataset.sample_excerpt_chars)
        profile = build_semantic_profile(sample, catalog.names)
        policy, vocab = cfg.policy_overrides(), cfg.fixed_vocabularies()
        warnings: List[str] = []

        # 1. recommend: any failure is fatal
        self.stage.advance(Stage.RECOMMENDING, "AI 正在分析")
        req = RecommendRequest(
            fields=[f.to_payload(_example(dataset, f.name)) for f in catalog],
            notes_sample=sample,
            semantic_profile=profile,
            policy_overrides=policy,
            fixed_vocabularies=vocab,
            exemplars=select_top_exemplars(EXEMPLARS_RECOMMEND, profile, limit=3),
        )
        try:
            rec = await self.collaborator.recommend(req)
        except Exception as e:
            if ctx.is_stale(key):
                log.info("stale recommend failure ignored", extra={"run_key": key})
                return None
            ctx.error = str(e)
            log.error("recommend failed", extra={"run_key": key, "error": str(e)})
            self.stage.fail(str(e))
            raise AnalysisError(str(e)) from e
        if ctx.is_stale(key):
            log.info("stale recommend response ignored", extra={"run_key": key})
            return None

        # 2. derive missing fields: best-effort
        missing = [m.model_dump() for m in rec.field_plan.missing_fields]
        if missing:
            self.stage.advance(Stage.DERIVING_FIELDS, "AI 正在生成图表所需字段")
            dreq = DeriveRequest(
                missing_fields=missing,
                notes=derive_notes(notes, cfg.dataset.derive_notes_limit, cfg.dataset.derive_excerpt_chars),
                policy_overrides=policy,
                fixed_vocabularies=vocab,
                exemplars=select_top_exemplars(
                    EXEMPLARS_DERIVE_FIELDS, {"field_names": [m["name"] for m in missing]}, limit=1,
                ),
            )
            try:
                derived = await self.collaborator.derive_fields(dreq)
            except Exception as e:
                derived = None
                msg = str(e) or type(e).__name__
                warnings.append(f"derive-fields: {msg}")
                log.warning("derive-fields failed; continuing", extra={"run_key": key, "error": msg})
            if ctx.is_stale(key):
                log.info("stale derive response ignored", extra={"run_key": key})
                return None
            derived_defs = ai_derived_fields(missing)
            if derived is not None:
                # a notebook field of the same name keeps its own role
                defs = derived_defs + list(catalog.fields)
                written = backfill(dataset, derived.field_values, defs)
                log.info("derived values written", extra={"run_key": key, "values": written})
            catalog.extend(derived_defs)

        # 3. field plan selection; rerank only when ambiguous
        fp = rec.field_plan
        pools = AxisPools.of(fp.names("time"), fp.names("dimension"), fp.names("metric"))
        base = _base_selection(rec)
        chart_type = rec.chart_type
        if not (pools.time or pools.dimension or base.time or base.dimension) and suggestions:
            # nothing to plot along; fall back to the engine's own first suggestion
            base = _fallback_plan(suggestions[0], catalog)
            chart_type = suggestions[0].chart_type
            pools = AxisPools.of([base.time], [base.dimension, base.dimension2], [base.metric])
            warnings.append("recommendation had no usable axis; using generated candidate")

        async def _rerank(rreq: RerankRequest) -> RerankResponse:
            self.stage.advance(Stage.RERANKING, "AI 正在从候选字段中择优")
            rreq = rreq.model_copy(update={
                "exemplars": select_top_exemplars(
                    EXEMPLARS_CONFIG, {"keywords": profile["keywords"]}, chart_type=rreq.chart_type, limit=2,
                ),
            })
            return await self.collaborator.rerank(rreq)

        selector = FieldPlanSelector(cfg.gates, cfg.selection, rerank=_rerank)
        outcome = await selector.select(
            chart_type, pools, dataset, base=base, known=catalog.names,
            semantic_profile=profile, policy_overrides=policy, fixed_vocabularies=vocab,
        )
        if ctx.is_stale(key):
            log.info("stale rerank response ignored", extra={"run_key": key})
            return None
        if outcome.error:
            warnings.append(f"rerank: {outcome.error}")
        selection = outcome.selection

        # 4. gates
        gate = evaluate(chart_type, dataset, selection, cfg.gates)
        if gate.count_metric:
            selection = replace(selection, metric=COUNT_METRIC, aggregation="count")

        # 5. variants, instance, series
        why = "；".join(x for x in (rec.why, gate.reason) if x)
        variants = build_variants(gate.chart_type, selection, outcome.pools, why=why, title=rec.core_question)
        instance: Optional[ChartInstance] = None
        final_sel = selection
        if variants:
            head = variants[0]
            for name in head.required_dimensions:
                catalog.ensure(name, "dimension")
            for name in head.required_metrics:
                if name != COUNT_METRIC:
                    catalog.ensure(name, "metric")
            final_sel = variant_selection(head, selection)
            instance = build_instance(
                head, outcome.pools, final_sel, reason=head.reason,
                limit=cfg.selection.max_axis_candidates,
            )
        series = aggregate(
            dataset, gate.chart_type, final_sel, top_n=gate.top_n, other_label=cfg.dataset.other_label,
        )

        result = AnalysisResult(
            run_key=key,
            chart_type=gate.chart_type,
            recommended_type=chart_type,
            core_question=rec.core_question,
            reason=why,
            selection=final_sel,
            gate=gate,
            variants=variants,
            suggestions=suggestions,
            instance=instance,
            series=series,
            fields=list(catalog.fields),
            stats=outcome.stats,
            dataset=dataset,
            reranked=outcome.reranked,
            warnings=warnings,
        )
        ctx.cache.store(key, result)
        self.stage.advance(Stage.READY, "分析完成")
        return result


__all__ = [
    "AnalysisError",
    "AnalysisRequest",
    "AnalysisResult",
    "RunCache",
    "RunContext",
    "AnalysisPipeline",
]
