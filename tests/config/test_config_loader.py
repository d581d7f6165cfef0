from notecharts.config_model.model import GateConfig, RootCfg


def test_config_loads(cfg):
    # sanity top-level
    assert cfg.env.project_name == "notecharts"
    assert cfg.gates.pie_topn == 8
    assert cfg.gates.line_min_points == 5
    assert cfg.candidates.max_candidates == 6
    assert cfg.selection.rerank_min_total == 4
    assert cfg.collaborator.base_url == ""

def test_config_dir_is_resolved(cfg, cfg_path):
    assert cfg._config_dir == cfg_path.parent.resolve()

def test_vocabularies_and_policy_payload(cfg):
    vocab = cfg.fixed_vocabularies()
    assert "其他" in vocab["主题"]
    policy = cfg.policy_overrides()
    assert policy["field_name_preferences"]["time"][0] == "发布时间"
    # only the collaborator-facing thresholds are sent
    assert set(policy["gates"]) == {
        "pie_topn", "line_min_points", "heatmap_min_density", "field_max_missing_rate", "bar_max_categories",
    }

def test_gate_config_clamps_out_of_range_values():
    g = GateConfig(heatmap_min_density=3.0, field_max_missing_rate=-1, pie_topn=0)
    assert g.heatmap_min_density == 1.0
    assert g.field_max_missing_rate == 0.0
    assert g.pie_topn == 1

def test_gate_config_from_overrides():
    assert GateConfig.from_overrides({"gates": {"pie_topn": 5}}).pie_topn == 5
    assert GateConfig.from_overrides({"line_min_points": 3}).line_min_points == 3
    assert GateConfig.from_overrides(None) == GateConfig()

def test_toml_with_bom_and_fences(tmp_path):
    p = tmp_path / "config.toml"
    p.write_text("\ufeff```toml\n[gates]\npie_topn = 4\n```\n", encoding="utf-8")
    cfg = RootCfg.from_toml(p)
    assert cfg.gates.pie_topn == 4
    # untouched sections keep their defaults
    assert cfg.dataset.other_label == "其他"

def test_endpoint_env_override(tmp_path, monkeypatch):
    p = tmp_path / "config.toml"
    p.write_text("[collaborator]\nbase_url = \"\"\n", encoding="utf-8")
    monkeypatch.setenv("NOTECHARTS_ENDPOINT", "http://localhost:9000")
    cfg = RootCfg.from_toml(p)
    assert cfg.collaborator.base_url == "http://localhost:9000"
