from __future__ import annotations
from typing import Any, Dict, List, Optional
from pathlib import Path
import os
from pydantic import (
    BaseModel,
    model_validator,
    ConfigDict,
    PrivateAttr,
)


# ---------- Leaf models ----------

class EnvCfg(BaseModel):
    project_name: str = "notecharts"
    timezone: str = "Asia/Shanghai"


class LoggingCfg(BaseModel):
    level: str = "INFO"
    structured_json: bool = True


class GateConfig(BaseModel):
    """
    Quality-gate thresholds. Supplied by configuration (or by a collaborator's
    policy_overrides.gates block); never derived from the data.
    """
    model_config = ConfigDict(extra="ignore")

    pie_topn: int = 8
    line_min_points: int = 5
    heatmap_min_density: float = 0.1
    field_max_missing_rate: float = 0.4
    bar_max_categories: int = 30
    # many near-equal slices: cardinality above this with a flat top share
    pie_max_cardinality: int = 12
    pie_min_top_share: float = 0.15

    @model_validator(mode="after")
    def _clamp(self):
        for k in ("heatmap_min_density", "field_max_missing_rate", "pie_min_top_share"):
            v = float(getattr(self, k))
            object.__setattr__(self, k, max(0.0, min(1.0, v)))
        for k in ("pie_topn", "line_min_points", "bar_max_categories", "pie_max_cardinality"):
            object.__setattr__(self, k, max(1, int(getattr(self, k))))
        return self

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]]) -> "GateConfig":
        """Build from a policy_overrides dict (``{"gates": {...}}``) or a bare gates dict."""
        if not isinstance(overrides, dict):
            return cls()
        gates = overrides.get("gates", overrides)
        return cls(**gates) if isinstance(gates, dict) else cls()


class CandidatesCfg(BaseModel):
    max_candidates: int = 6
    top_metrics: int = 3
    pie_min_categories: int = 2
    pie_max_categories: int = 8


class SelectionCfg(BaseModel):
    rerank_min_total: int = 4
    max_axis_candidates: int = 5


class FieldPreferencesCfg(BaseModel):
    time: List[str] = ["发布时间", "日期", "created_at", "笔记创建时间", "时间"]
    topic: List[str] = ["主题", "标签", "关键词"]
    amount: List[str] = ["金额", "支出", "收入"]


class PolicyCfg(BaseModel):
    field_name_preferences: FieldPreferencesCfg = FieldPreferencesCfg()
    fixed_vocabularies: Dict[str, List[str]] = {
        "主题": ["模型", "工具", "应用", "行业", "研究", "其他"],
        "情绪来源": ["工作", "家庭", "朋友", "健康", "金钱", "自我成长", "其他"],
        "记账类型": ["餐饮", "交通", "住房", "购物", "娱乐", "医疗", "教育", "其他"],
    }


class DatasetCfg(BaseModel):
    notes_sample_size: int = 24
    sample_excerpt_chars: int = 220
    derive_notes_limit: int = 220
    derive_excerpt_chars: int = 400
    other_label: str = "其他"


class CollaboratorCfg(BaseModel):
    # empty base_url -> offline heuristic collaborator
    base_url: str = ""
    timeout_s: float = 60.0
    recommend_path: str = "/api/ai-chart/recommend"
    derive_fields_path: str = "/api/ai-chart/derive-fields"
    rerank_path: str = "/api/ai-chart/rerank"


# ---------- Root ----------

class RootCfg(BaseModel):
    model_config = ConfigDict(extra="ignore")

    env: EnvCfg = EnvCfg()
    logging: LoggingCfg = LoggingCfg()
    gates: GateConfig = GateConfig()
    candidates: CandidatesCfg = CandidatesCfg()
    selection: SelectionCfg = SelectionCfg()
    policy: PolicyCfg = PolicyCfg()
    dataset: DatasetCfg = DatasetCfg()
    collaborator: CollaboratorCfg = CollaboratorCfg()

    _config_dir: Optional[Path] = PrivateAttr(default=None)

    def policy_overrides(self) -> Dict[str, Any]:
        """Payload handed to collaborators unchanged: gate thresholds + name preferences."""
        return {
            "field_name_preferences": self.policy.field_name_preferences.model_dump(),
            "gates": self.gates.model_dump(
                include={"pie_topn", "line_min_points", "heatmap_min_density",
                         "field_max_missing_rate", "bar_max_categories"}
            ),
        }

    def fixed_vocabularies(self) -> Dict[str, List[str]]:
        return {k: list(v) for k, v in self.policy.fixed_vocabularies.items()}

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str]) -> "RootCfg":
        try:
            import tomllib  # py>=3.11
        except Exception:
            import tomli as tomllib

        p = Path(path)

        def _parse_raw_dict() -> dict:
            try:
                with p.open("rb") as f:
                    return tomllib.load(f)
            except Exception:
                pass

            # retry: strip BOM and accidental code fences
            text = p.read_text(encoding="utf-8-sig", errors="replace")
            cleaned = text.strip()
            if cleaned.startswith("```"):
                cleaned = cleaned.lstrip("`").strip()
                if cleaned.startswith("toml"):
                    cleaned = cleaned[4:].strip()
                if cleaned.endswith("```"):
                    cleaned = cleaned.rstrip("`").strip()
            cleaned = cleaned.lstrip("\ufeff\u200b\u200c\u200d\u2060")

            try:
                return tomllib.loads(cleaned)
            except Exception as e:
                snippet = cleaned[:80].replace("\n", "\\n")
                raise RuntimeError(
                    f"Failed to parse TOML at {p} after BOM/cleanup. "
                    f"First chars: {snippet!r}"
                ) from e

        raw = _parse_raw_dict()

        raw.setdefault("env", {})
        raw.setdefault("logging", {})
        raw.setdefault("gates", {})
        raw.setdefault("candidates", {})
        raw.setdefault("selection", {})
        raw.setdefault("policy", {})
        raw["policy"].setdefault("field_name_preferences", {})
        raw.setdefault("dataset", {})
        raw.setdefault("collaborator", {})

        # env override for the collaborator endpoint
        env_url = os.environ.get("NOTECHARTS_ENDPOINT")
        if env_url:
            raw["collaborator"]["base_url"] = env_url

        policy_raw = dict(raw["policy"])
        prefs = FieldPreferencesCfg(**policy_raw.pop("field_name_preferences"))
        policy = PolicyCfg(field_name_preferences=prefs, **policy_raw)

        cfg = cls(
            env=EnvCfg(**raw["env"]),
            logging=LoggingCfg(**raw["logging"]),
            gates=GateConfig(**raw["gates"]),
            candidates=CandidatesCfg(**raw["candidates"]),
            selection=SelectionCfg(**raw["selection"]),
            policy=policy,
            dataset=DatasetCfg(**raw["dataset"]),
            collaborator=CollaboratorCfg(**raw["collaborator"]),
        )
        cfg._config_dir = p.parent.resolve()
        return cfg

    @classmethod
    def load(cls, path: str | None = None) -> "RootCfg":
        final = Path(path or os.environ.get("NOTECHARTS_CFG", "config/config.toml")).resolve()
        return cls.from_toml(final)


def load_config(path: str | None = None) -> RootCfg:
    return RootCfg.load(path)
