"""
JSON Schema checks for the JSON files agentpm owns (today: .agentpm.json).

Schemas ship in agentpm/schemas as <name>.schema.json. Each one is compiled
into a validator once per process, and every violation is reported rather
than just the first. Failures are `io` errors: the file on disk is unusable.
"""

import json
from pathlib import Path

import jsonschema

from .errors import StorageError

# schema name -> compiled validator
_validators: dict = {}


class SchemaError(StorageError):
    """JSON text is malformed or does not match its schema."""

    def __init__(self, schema_name: str, message: str, problems: list[str] | None = None):
        self.schema_name = schema_name
        self.problems = problems or []
        super().__init__(message, schema=schema_name, problems=self.problems)


def _get_schemas_dir() -> Path:
    return Path(__file__).parent.parent / "schemas"


def _validator(schema_name: str):
    if schema_name not in _validators:
        schema_path = _get_schemas_dir() / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise SchemaError(schema_name, f"Schema file not found: {schema_path}")
        schema = json.loads(schema_path.read_text())
        cls = jsonschema.validators.validator_for(schema)
        cls.check_schema(schema)
        _validators[schema_name] = cls(schema)
    return _validators[schema_name]


def problems(data, schema_name: str) -> list[str]:
    """Every violation as '<path>: <message>', ordered by path."""
    errors = sorted(_validator(schema_name).iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    return [f"{'.'.join(str(p) for p in e.absolute_path) or '(root)'}: {e.message}" for e in errors]


def check(data, schema_name: str, what: str) -> None:
    """
    Raise if data does not match the named schema.

    Args:
        data: Parsed JSON value
        schema_name: Schema name (e.g. "config")
        what: Message prefix naming the document and the action

    Raises:
        SchemaError: Listing every violation
    """
    found = problems(data, schema_name)
    if found:
        more = f" (and {len(found) - 1} more)" if len(found) > 1 else ""
        raise SchemaError(schema_name, f"{what}: {found[0]}{more}", found)


def load_json(raw: bytes, schema_name: str, what: str) -> dict:
    """Decode, parse and check JSON bytes read from disk."""
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SchemaError(schema_name, f"{what}: Invalid JSON: {e}") from e
    check(data, schema_name, what)
    return data
