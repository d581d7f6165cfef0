from datetime import datetime
from pathlib import Path
import pytest

@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).resolve().parents[1]

@pytest.fixture(scope="session")
def cfg_path(project_root: Path) -> Path:
    return project_root / "config" / "config.toml"

@pytest.fixture(scope="session")
def cfg(cfg_path: Path):
    try:
        from notecharts.config_model.model import load_config
    except Exception as e:
        pytest.skip(f"config loader not importable yet: {e}")
    return load_config(str(cfg_path))

@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 12, 31, 12, 0, 0)

@pytest.fixture
def mood_notes():
    """Six dated mood-journal notes, one per day."""
    return [
        {"note_id": "n1", "title": "工作很累", "content_text": "项目加班，心情 3 分", "created_at": "2025-12-01"},
        {"note_id": "n2", "title": "和朋友聚会", "content_text": "很开心 8 分", "created_at": "2025-12-02"},
        {"note_id": "n3", "title": "跑步", "content_text": "锻炼身体 7 分", "created_at": "2025-12-03"},
        {"note_id": "n4", "title": "读书", "content_text": "学习成长 6 分", "created_at": "2025-12-04"},
        {"note_id": "n5", "title": "家庭晚餐", "content_text": "父母来了 9 分", "created_at": "2025-12-05"},
        {"note_id": "n6", "title": "周末", "content_text": "无事 5 分", "created_at": "2025-12-06"},
    ]
