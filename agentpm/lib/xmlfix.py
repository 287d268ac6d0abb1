"""
Repairs for hand-edited epic documents that are no longer well-formed.

Only character-level escaping is repaired; structure is never guessed.
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass

# A known entity missing its semicolon, e.g. "R&amp D"
_UNTERMINATED_ENTITY = re.compile(r'&(amp|lt|gt|quot|apos)(?=\s)')
# An ampersand that does not start a valid reference
_STRAY_AMPERSAND = re.compile(r'&(?!(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);)')
# A less-than that cannot open a tag, comment, or processing instruction
_STRAY_LESS_THAN = re.compile(r'<(?![A-Za-z_/!?])')


@dataclass
class XMLFix:
    line: int
    description: str

    def to_dict(self) -> dict:
        return {"line": self.line, "description": self.description}


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _substitute(text: str, pattern: re.Pattern, replace, describe) -> tuple[str, list[XMLFix]]:
    fixes = []

    def sub(m):
        fixes.append(XMLFix(_line_of(text, m.start()), describe(m)))
        return replace(m)

    return pattern.sub(sub, text), fixes


def fix_xml_text(text: str) -> tuple[str, list[XMLFix]]:
    """Escape stray `&` and `<` characters; returns the new text and what changed."""
    fixes = []
    text, found = _substitute(
        text, _UNTERMINATED_ENTITY,
        lambda m: f"&{m.group(1)};",
        lambda m: f"Terminated entity &{m.group(1)} with ';'",
    )
    fixes.extend(found)
    text, found = _substitute(
        text, _STRAY_AMPERSAND,
        lambda m: "&amp;",
        lambda m: "Escaped & as &amp;",
    )
    fixes.extend(found)
    text, found = _substitute(
        text, _STRAY_LESS_THAN,
        lambda m: "&lt;",
        lambda m: "Escaped < as &lt;",
    )
    fixes.extend(found)
    return text, fixes


def parse_error(text: str) -> str | None:
    """The parser's complaint about `text`, or None if it is well-formed."""
    try:
        ET.fromstring(text.encode("utf-8"))
    except ET.ParseError as e:
        return str(e)
    return None
