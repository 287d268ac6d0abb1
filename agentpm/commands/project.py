"""
agentpm init / switch / config - Manage which epic document is current.
"""

import logging
from pathlib import Path

from agentpm.lib.config import Config, load_config, require_config, resolve_epic_path, save_config
from agentpm.lib.constants import DEFAULT_ASSIGNEE, VERSION
from agentpm.lib.epicfile import read_epic
from agentpm.lib.errors import NotFoundError, UsageError
from agentpm.lib.render import Result, text_formatter

logger = logging.getLogger(__name__)


def stored_epic_path(epic_path: Path, config_path: Path) -> str:
    """Form written to `current_epic`: relative to the config file when possible."""
    resolved = epic_path.resolve()
    try:
        return str(resolved.relative_to(config_path.resolve().parent))
    except ValueError:
        return str(resolved)


def _require_epic_file(path: Path) -> None:
    if not path.is_file():
        raise NotFoundError(f"Epic file not found: {path}", missing_file=True, path=str(path))


def cmd_init(args, config_path: Path) -> Result:
    """Create (or rebind) the config file to an existing epic document."""
    epic_path = Path(args.epic)
    _require_epic_file(epic_path)

    existing = load_config(config_path) if config_path.exists() else None
    config = Config(
        current_epic=stored_epic_path(epic_path, config_path),
        project_name=args.project_name or (existing.project_name if existing else ""),
        default_assignee=args.assignee or (existing.default_assignee if existing else DEFAULT_ASSIGNEE),
        previous_epic=existing.previous_epic if existing else "",
    )
    save_config(config, config_path)
    return Result("config_initialized", {
        "config_file": str(config_path),
        "current_epic": config.current_epic,
        "project_name": config.project_name or None,
        "default_assignee": config.default_assignee,
        "message": f"Initialized {config_path} with epic {config.current_epic}",
    })


def cmd_switch(args, config_path: Path) -> Result:
    """Point the config at another epic, or back at the previous one."""
    config = require_config(config_path)

    if args.back:
        if not config.previous_epic:
            raise UsageError("No previous epic to switch back to")
        target = config.previous_epic
    else:
        if not args.epic:
            raise UsageError("switch requires an epic file or --back")
        target_path = Path(args.epic)
        _require_epic_file(target_path)
        target = stored_epic_path(target_path, config_path)

    resolved = resolve_epic_path(Config(current_epic=target), config_path)
    _require_epic_file(resolved)
    epic, _ = read_epic(resolved)

    previous = config.current_epic
    config.previous_epic = previous
    config.current_epic = target
    save_config(config, config_path)
    logger.info(f"[CONFIG] switched {previous} -> {target}")

    return Result("epic_switched", {
        "previous_epic": previous,
        "current_epic": target,
        "epic_id": epic.id,
        "epic_name": epic.name,
        "message": f"Switched to epic {epic.id}" + (f" ({epic.name})" if epic.name else "") + f" in {target}",
    })


def cmd_config(args, config_path: Path) -> Result:
    config = require_config(config_path)
    epic_path = resolve_epic_path(config, config_path)
    return Result("config", {
        "config_file": str(config_path),
        "current_epic": config.current_epic,
        "epic_path": str(epic_path),
        "epic_exists": epic_path.is_file(),
        "previous_epic": config.previous_epic or None,
        "project_name": config.project_name or None,
        "default_assignee": config.default_assignee,
    })


@text_formatter("config")
def _config_text(f: dict) -> list[str]:
    lines = [
        f"Config file:      {f['config_file']}",
        f"Current epic:     {f['current_epic']}" + ("" if f["epic_exists"] else "  (missing)"),
    ]
    if f["previous_epic"]:
        lines.append(f"Previous epic:    {f['previous_epic']}")
    if f["project_name"]:
        lines.append(f"Project name:     {f['project_name']}")
    lines.append(f"Default assignee: {f['default_assignee']}")
    return lines


def cmd_version(args, config_path: Path) -> Result:
    return Result("version", {"version": VERSION, "message": f"agentpm {VERSION}"})
