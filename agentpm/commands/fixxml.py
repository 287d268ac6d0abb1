"""
agentpm fix-xml - Escape stray characters that break a hand-edited epic file.
"""

import logging

from agentpm.lib.errors import StorageError
from agentpm.lib.fileio import atomic_write, read_bytes
from agentpm.lib.render import Result, text_formatter
from agentpm.lib.xmlfix import fix_xml_text, parse_error
from agentpm.workflow.engine import Invocation

logger = logging.getLogger(__name__)

BACKUP_STAMP = "%Y%m%d-%H%M%S"


def cmd_fix_xml(args, inv: Invocation) -> Result:
    path = inv.epic_path
    original = read_bytes(path, "epic file")
    try:
        text = original.decode("utf-8")
    except UnicodeDecodeError as e:
        raise StorageError(f"Epic file {path} is not UTF-8: {e}") from e

    fixed, fixes = fix_xml_text(text)
    fields = {
        "file": str(path),
        "fix_count": len(fixes),
        "fixes": [f.to_dict() for f in fixes],
        "dry_run": bool(args.dry_run),
        "backup": None,
    }
    if not fixes:
        fields["message"] = f"No XML encoding issues found in {path}"
        return Result("xml_fixed", fields)

    problem = parse_error(fixed)
    if problem is not None:
        raise StorageError(
            f"Epic file {path} is still not well-formed after {len(fixes)} fix(es): {problem}",
            suggestion="Repair the document structure by hand",
        )

    if args.dry_run:
        fields["message"] = f"Would fix {len(fixes)} XML encoding issue(s) in {path} (dry run)"
        return Result("xml_fixed", fields)

    if not args.no_backup:
        backup = path.with_name(f"{path.name}.backup.{inv.now.strftime(BACKUP_STAMP)}")
        atomic_write(backup, original)
        fields["backup"] = str(backup)
    atomic_write(path, fixed)
    logger.info(f"[FIX] {len(fixes)} fix(es) written to {path}")
    fields["message"] = f"Fixed {len(fixes)} XML encoding issue(s) in {path}"
    return Result("xml_fixed", fields)


@text_formatter("xml_fixed")
def _fix_text(f: dict) -> list[str]:
    lines = [f["message"]]
    for i, fix in enumerate(f["fixes"], 1):
        lines.append(f"  {i}. line {fix['line']}: {fix['description']}")
    if f["backup"]:
        lines.append(f"Backup: {f['backup']}")
    return lines
