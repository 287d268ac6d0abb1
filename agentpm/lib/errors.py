"""
Error taxonomy for agentpm.

Every failure a command can report is one of these exceptions. Each carries
its taxonomy identifier (`kind`), the process exit code, and the structured
fields rendered in the error payload. Nothing below the CLI catches them.
"""

from .constants import EXIT_FAILURE, EXIT_IO, EXIT_USAGE


class AgentPMError(Exception):
    """Base class for all reportable failures."""

    kind = "error"
    exit_code = EXIT_FAILURE

    def __init__(self, message: str, suggestion: str = "", **details):
        self.message = message
        self.suggestion = suggestion
        self.details = details
        super().__init__(message)

    def to_fields(self) -> dict:
        """Structured fields for the error payload, in rendering order."""
        fields = {"type": self.kind}
        fields.update(self.details)
        fields["message"] = self.message
        if self.suggestion:
            fields["suggestion"] = self.suggestion
        return fields


class NotFoundError(AgentPMError):
    """An entity id or a file does not exist."""

    kind = "not_found"

    def __init__(self, message: str, suggestion: str = "", missing_file: bool = False, **details):
        super().__init__(message, suggestion, **details)
        self.exit_code = EXIT_IO if missing_file else EXIT_FAILURE


class StorageError(AgentPMError):
    """Reading, writing, or parsing a file failed."""

    kind = "io"
    exit_code = EXIT_IO


class InvalidTransition(AgentPMError):
    """Raised when the status machine rejects a transition."""

    kind = "invalid_transition"

    def __init__(self, entity_kind: str, entity_id: str, from_state: str, to_state: str, suggestion: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: {entity_kind} {entity_id} cannot go from {from_state} to {to_state}",
            suggestion,
            entity_kind=entity_kind,
            entity_id=entity_id,
            current_status=from_state,
            target_status=to_state,
        )


class CompletionValidationError(AgentPMError):
    """A done-* guard found unfinished children or failing tests."""

    kind = "completion_validation"

    def __init__(self, diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message, diagnostic.suggestion, **diagnostic.to_fields())


class ValidationError(AgentPMError):
    """Document invariants are broken, or a pre-mutation guard refused."""

    kind = "validation"

    def __init__(self, message: str, suggestion: str = "", findings: list | None = None, **details):
        if findings is not None:
            details["findings"] = [f.to_dict() for f in findings]
        super().__init__(message, suggestion, **details)
        self.findings = findings or []


class UsageError(AgentPMError):
    """Missing argument or bad flag."""

    kind = "usage"
    exit_code = EXIT_USAGE
