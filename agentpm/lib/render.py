"""
Output rendering.

A command produces one Result: a variant name plus an ordered dict of
fields. The same Result is emitted as text, JSON (`{variant: fields}`) or XML
(`<variant>` with one child element per field), so field names never drift
between formats. Text output can be customized per variant with
`@text_formatter`; otherwise the generic layout is used.
"""

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Callable

from .constants import OUTPUT_FORMATS


@dataclass
class Result:
    variant: str
    fields: dict
    is_error: bool = False


TEXT_FORMATTERS: dict[str, Callable[[dict], list[str]]] = {}


def text_formatter(*variants: str):
    """Register a text layout for one or more variants."""
    def register(func):
        for variant in variants:
            TEXT_FORMATTERS[variant] = func
        return func
    return register


def _scalar_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _singular(tag: str) -> str:
    if tag.endswith("ies"):
        return tag[:-3] + "y"
    if tag.endswith(("ches", "shes", "xes")):
        return tag[:-2]
    if tag.endswith("s") and not tag.endswith("ss"):
        return tag[:-1]
    return "item"


def to_element(tag: str, value) -> ET.Element:
    elem = ET.Element(tag)
    if isinstance(value, dict):
        for key, item in value.items():
            elem.append(to_element(key, item))
    elif isinstance(value, (list, tuple)):
        child_tag = _singular(tag)
        for item in value:
            elem.append(to_element(child_tag, item))
    elif value is not None:
        elem.text = _scalar_text(value)
    return elem


def render_json(result: Result) -> str:
    return json.dumps({result.variant: result.fields}, indent=2, ensure_ascii=False)


def render_xml(result: Result) -> str:
    root = to_element(result.variant, result.fields)
    ET.indent(root, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode")


def _generic_lines(fields: dict, indent: str = "") -> list[str]:
    lines = []
    for key, value in fields.items():
        if key == "message":
            continue
        label = key.replace("_", " ")
        if isinstance(value, dict):
            lines.append(f"{indent}{label}:")
            lines.extend(_generic_lines(value, indent + "  "))
        elif isinstance(value, (list, tuple)):
            lines.append(f"{indent}{label}: {len(value)}")
            for item in value:
                if isinstance(item, dict):
                    summary = ", ".join(f"{k}={_scalar_text(v)}" for k, v in item.items() if v not in (None, ""))
                    lines.append(f"{indent}  - {summary}")
                else:
                    lines.append(f"{indent}  - {_scalar_text(item)}")
        elif value is not None:
            lines.append(f"{indent}{label}: {_scalar_text(value)}")
    return lines


def generic_text(fields: dict) -> list[str]:
    lines = []
    if fields.get("message"):
        lines.append(str(fields["message"]))
    lines.extend(_generic_lines(fields))
    return lines


def render_text(result: Result) -> str:
    formatter = TEXT_FORMATTERS.get(result.variant, generic_text)
    return "\n".join(formatter(result.fields))


_EMITTERS = {
    "text": render_text,
    "json": render_json,
    "xml": render_xml,
}


def render(result: Result, fmt: str = "text") -> str:
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(f"Unknown output format: {fmt}")
    return _EMITTERS[fmt](result)


@text_formatter("error")
def _error_text(fields: dict) -> list[str]:
    lines = [f"Error ({fields.get('type', 'error')}): {fields.get('message', '')}"]
    for key in ("pending_phases", "pending_tasks", "unfinished_tests", "failing_tests"):
        items = fields.get(key)
        if not items:
            continue
        lines.append(f"  {key.replace('_', ' ').capitalize()}:")
        for item in items:
            name = f" ({item['name']})" if item.get("name") else ""
            lines.append(f"    - {item['id']}{name}")
    for finding in fields.get("findings", []):
        lines.append(f"  [{finding['severity']}] {finding['message']}")
    for failure in fields.get("failures", []):
        lines.append(f"  - {failure['test_id']}: {failure['message']}")
    if fields.get("suggestion"):
        lines.append(f"Suggestion: {fields['suggestion']}")
    return lines
