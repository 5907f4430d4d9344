"""Error taxonomy shared by the pipeline, its collaborators and the API."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed set of error categories.

    Only the API layer converts these into HTTP responses.
    """

    VALIDATION = "validation"
    COLLABORATOR = "collaborator"
    NOT_FOUND = "not_found"


class PipelineError(Exception):
    """Base class for all expected pipeline errors."""

    kind: ErrorKind = ErrorKind.COLLABORATOR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PipelineError):
    """Input rejected before any stage runs. Never retried."""

    kind = ErrorKind.VALIDATION


class CollaboratorError(PipelineError):
    """An external collaborator (speech, LLM, transcoder, store) failed."""

    kind = ErrorKind.COLLABORATOR

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class NotFoundError(PipelineError):
    """A referenced document does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id
