from __future__ import annotations
import hashlib, json, re
from typing import Any, Iterable, Mapping, Optional
from slugify import slugify as _slugify


def slugify(s: str) -> str:
    # allow_unicode keeps CJK field names distinguishable in ids
    return _slugify(s, lowercase=True, separator="-", allow_unicode=True)


def _json_dumps_stable(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def stable_hash(obj: Any, algo: str = "sha256") -> str:
    h = hashlib.new(algo)
    h.update(_json_dumps_stable(obj).encode("utf-8"))
    return h.hexdigest()


def short_id(obj: Any, n: int = 10) -> str:
    return stable_hash(obj)[:n]


def string_hash(s: str) -> int:
    """Non-negative 31-bit hash of a string, stable across processes (unlike hash())."""
    h = 0
    for ch in s:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def candidate_key(chart_type: str, dimensions: Iterable[str], metrics: Iterable[str]) -> str:
    """Dedup key: chart type + sorted dimensions + metrics (metric order is kept)."""
    dims = sorted(str(d) for d in dimensions)
    return f"{chart_type}:" + "|".join(dims) + ":" + "|".join(str(m) for m in metrics)


def make_candidate_id(chart_type: str, dimensions: Iterable[str], metrics: Iterable[str]) -> str:
    dims = sorted(str(d) for d in dimensions)
    parts = [slugify(x) or short_id(x, 6) for x in dims + [str(m) for m in metrics]]
    return f"{chart_type}-" + "-".join(parts)


def make_variant_id(chart_type: str, dimensions: Iterable[str], metric: str) -> str:
    return f"v3-{chart_type}-{'|'.join(dimensions)}-{metric}"


def make_field_id(prefix: str, name: str) -> str:
    return f"{prefix}-{short_id({'name': name}, 8)}"


def make_run_key(
    notebook_id: Optional[str],
    note_ids: Iterable[str],
    date_range: Optional[Mapping[str, Any]] = None,
    template_id: Optional[str] = None,
) -> str:
    """
    Deterministic fingerprint of one analysis pass:
    notebook | sorted note ids | from | to | prompt template.
    """
    ids = ",".join(sorted(str(i) for i in note_ids))
    dr = date_range or {}
    return "|".join([
        str(notebook_id or ""),
        ids,
        str(dr.get("from") or ""),
        str(dr.get("to") or ""),
        str(template_id or ""),
    ])


_WS = re.compile(r"\s+")


def name_variants(name: str) -> list[str]:
    """Display name, then whitespace-stripped, then whitespace-underscored."""
    if not name:
        return []
    return [name, _WS.sub("", name), _WS.sub("_", name)]
