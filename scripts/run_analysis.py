from __future__ import annotations
import argparse, asyncio, json, sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

from notecharts.ai.client import HttpCollaborator
from notecharts.ai.heuristic import HeuristicCollaborator
from notecharts.config_model.model import RootCfg
from notecharts.pipeline.run import AnalysisError, AnalysisPipeline, AnalysisRequest
from notecharts.utils.log import configure_from_cfg


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _load_inputs(notes_path: str, notebook_path: str | None) -> Tuple[List[Dict[str, Any]], Dict[str, Any], Dict[str, Any]]:
    """
    --notes holds either a bare list of notes or
    {"notebook": {...}, "notes": [...], "ai_values": {...}};
    --notebook (optional) overrides the embedded notebook.
    """
    raw = _read_json(notes_path)
    if isinstance(raw, dict):
        notes, notebook = raw.get("notes") or [], raw.get("notebook") or {}
        ai_values = raw.get("ai_values") or {}
    else:
        notes, notebook, ai_values = raw, {}, {}
    if notebook_path:
        notebook = _read_json(notebook_path)
    if not isinstance(notes, list):
        raise SystemExit(f"--notes must hold a list of notes: {notes_path}")
    notes = [n for n in notes if isinstance(n, dict)]
    notebook = notebook if isinstance(notebook, dict) else {}
    return notes, notebook, ai_values if isinstance(ai_values, dict) else {}


def main():
    ap = argparse.ArgumentParser(description="Recommend, gate and aggregate a chart for a set of notes.")
    ap.add_argument("--notes", required=True, help="JSON file with the selected notes")
    ap.add_argument("--notebook", default=None, help="JSON file with {id, type, component_config}")
    ap.add_argument("--config", default=None, help="Defaults to $NOTECHARTS_CFG or config/config.toml")
    ap.add_argument("--endpoint", default=None, help="AI chart service base URL (overrides config)")
    ap.add_argument("--from", dest="date_from", default=None, help="Inclusive start date")
    ap.add_argument("--to", dest="date_to", default=None, help="Inclusive end date")
    ap.add_argument("--template", default=None, help="Prompt template id (part of the run key)")
    ap.add_argument("--with-rows", action="store_true", help="Include the materialized dataset in the output")
    args = ap.parse_args()

    cfg = RootCfg.load(args.config)
    if args.endpoint:
        cfg.collaborator.base_url = args.endpoint
    configure_from_cfg(cfg)

    notes, notebook, ai_values = _load_inputs(args.notes, args.notebook)
    collaborator = (
        HttpCollaborator.from_cfg(cfg.collaborator) if cfg.collaborator.base_url else HeuristicCollaborator()
    )
    request = AnalysisRequest(
        notes=notes,
        notebook_id=str(notebook.get("id") or notebook.get("notebook_id") or ""),
        notebook_type=notebook.get("type"),
        component_config=notebook.get("component_config") or notebook.get("componentConfig"),
        date_range={"from": args.date_from, "to": args.date_to} if (args.date_from or args.date_to) else None,
        template_id=args.template,
        ai_values=ai_values or None,
    )

    pipeline = AnalysisPipeline(cfg, collaborator)
    try:
        result = asyncio.run(pipeline.run(request))
    except AnalysisError as e:
        print(json.dumps({"stage": pipeline.stage.stage.value, "error": str(e)}, ensure_ascii=False))
        sys.exit(1)

    if result is None:
        print(json.dumps({"stage": pipeline.stage.stage.value, "result": None}, ensure_ascii=False))
        return
    out = result.to_record()
    if args.with_rows:
        out["dataset"] = [r.to_record() for r in result.dataset]
    print(json.dumps(out, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
