"""
agentpm query <path> - Evaluate an ElementTree path against the epic document.

Examples:
    agentpm query ".//task[@status='wip']"
    agentpm query "//test[@result='failing']"
"""

import xml.etree.ElementTree as ET
from pathlib import Path

from agentpm.lib.epicfile import inner_xml, load_epic
from agentpm.lib.errors import StorageError, UsageError
from agentpm.lib.fileio import read_bytes
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow.engine import Invocation


def normalize_path(expression: str) -> str:
    """Accept XPath-style absolute forms that ElementTree does not."""
    expr = expression.strip()
    if expr.startswith("//"):
        return "." + expr
    if expr == "/epic" or expr == "/":
        return "."
    if expr.startswith("/epic/"):
        return "./" + expr[len("/epic/"):]
    return expr


def run_query(path: Path, expression: str) -> list[ET.Element]:
    # Validate first so queries never run against a broken document
    load_epic(path)
    try:
        root = ET.fromstring(read_bytes(path, "epic file"))
    except ET.ParseError as e:
        raise StorageError(f"Cannot parse epic document {path}: {e}") from e
    try:
        return root.findall(normalize_path(expression))
    except (SyntaxError, KeyError) as e:
        raise UsageError(f"Invalid query '{expression}': {e}") from None


def cmd_query(args, inv: Invocation) -> Result:
    matches = run_query(inv.epic_path, args.expression)
    return Result("query_result", {
        "expression": args.expression,
        "count": len(matches),
        "matches": [
            {"tag": elem.tag, "attributes": dict(elem.attrib), "text": inner_xml(elem) if len(elem) == 0 else ""}
            for elem in matches
        ],
    })


@text_formatter("query_result")
def _query_text(f: dict) -> list[str]:
    lines = [f"{f['count']} match(es) for {f['expression']}"]
    for m in f["matches"]:
        attrs = " ".join(f'{k}="{v}"' for k, v in m["attributes"].items())
        line = f"  <{m['tag']}{' ' + attrs if attrs else ''}>"
        if m["text"]:
            line += f" {m['text']}"
        lines.append(line)
    return lines
