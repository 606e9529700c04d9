from __future__ import annotations

from pathlib import Path

from ..config import default_config
from ..constants import SCHEMA_VERSION, STATE_DIR_NAME
from .file_repos import FileConfigRepository

STATE_FILES = {
    "workspaces": "workspaces.yaml",
    "agents": "agents.yaml",
    "tasks": "tasks.yaml",
    "messages": "messages.yaml",
    "notifications": "notifications.yaml",
    "run_requests": "run_requests.yaml",
    "activities": "activities.jsonl",
    "config": "config.yaml",
}


def ensure_state_root(project_dir: Path) -> Path:
    """Create the state directory, its empty collections and default config."""
    state_root = project_dir / STATE_DIR_NAME
    state_root.mkdir(parents=True, exist_ok=True)

    for file_name in STATE_FILES.values():
        target = state_root / file_name
        if file_name.endswith(".yaml") and not target.exists():
            target.write_text(f"version: {SCHEMA_VERSION}\n", encoding="utf-8")
        if file_name.endswith(".jsonl") and not target.exists():
            target.touch()

    config_repo = FileConfigRepository(state_root / "config.yaml", state_root / "config.lock")
    config = config_repo.load()
    before = dict(config)
    config.pop("version", None)
    config["schema_version"] = SCHEMA_VERSION
    for section, values in default_config().items():
        config.setdefault(section, values)
    if config != before:
        config_repo.save(config)

    return state_root
