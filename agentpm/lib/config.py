"""
Configuration loader for agentpm.

The config file (`.agentpm.json`) points at the epic document the agent is
working on and names the agent used for event attribution.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from . import schema
from .constants import CONFIG_FILENAME, DEFAULT_ASSIGNEE
from .errors import NotFoundError
from .fileio import atomic_write, read_bytes

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Project configuration from .agentpm.json"""
    current_epic: str
    project_name: str = ""
    default_assignee: str = DEFAULT_ASSIGNEE
    previous_epic: str = ""

    def to_dict(self) -> dict:
        data = {"current_epic": self.current_epic}
        if self.previous_epic:
            data["previous_epic"] = self.previous_epic
        if self.project_name:
            data["project_name"] = self.project_name
        data["default_assignee"] = self.default_assignee
        return data


def default_config_path(cwd: Path | None = None) -> Path:
    return (cwd or Path.cwd()) / CONFIG_FILENAME


def load_config(path: Path) -> Config:
    """Load and schema-check the config file.

    Raises:
        NotFoundError: If the file does not exist (exit 2)
        StorageError: If it is not valid JSON or fails the schema
    """
    raw = read_bytes(path, "config file")
    data = schema.load_json(raw, "config", f"Invalid config file {path}")

    return Config(
        current_epic=data["current_epic"],
        project_name=data.get("project_name", ""),
        default_assignee=data.get("default_assignee") or DEFAULT_ASSIGNEE,
        previous_epic=data.get("previous_epic", ""),
    )


def save_config(config: Config, path: Path) -> None:
    """Validate and atomically write the config file."""
    data = config.to_dict()
    schema.check(data, "config", f"Refusing to write invalid config to {path}")
    atomic_write(path, json.dumps(data, indent=2) + "\n")
    logger.info(f"[CONFIG] saved {path} (current_epic={config.current_epic})")


def resolve_epic_path(config: Config, config_path: Path) -> Path:
    """Resolve `current_epic` against the config file's directory."""
    epic = Path(config.current_epic)
    if epic.is_absolute():
        return epic
    return Path(config_path).parent / epic


def require_config(path: Path) -> Config:
    """Load config, turning a missing file into an actionable error."""
    if not Path(path).exists():
        raise NotFoundError(
            f"No configuration found at {path}",
            suggestion="Run 'agentpm init --epic <file>' or pass --file",
            missing_file=True,
            path=str(path),
        )
    return load_config(path)
