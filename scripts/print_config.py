from notecharts.config_model.model import load_config
cfg = load_config()  # reads $NOTECHARTS_CFG or config/config.toml
print("Project:", cfg.env.project_name)
print("Timezone:", cfg.env.timezone)
print("Gates:", cfg.gates.model_dump())
print("Candidates:", cfg.candidates.model_dump())
print("Rerank when total >=", cfg.selection.rerank_min_total)
print("Collaborator:", cfg.collaborator.base_url or "(offline heuristic)")
