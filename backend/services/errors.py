"""Error types shared by the store, the generation loop and the query engine."""


class GenerationAttemptError(Exception):
    """One failed generation attempt. Recorded by the retry loop, never raised to callers."""
    kind = "attempt_failed"


class ParseError(GenerationAttemptError):
    """Generated text could not be parsed as the expected syntax."""
    kind = "parse_error"


class ShapeValidationError(GenerationAttemptError):
    """Generated content parsed but does not match the required shape."""
    kind = "shape_invalid"


class CollaboratorError(GenerationAttemptError):
    """The text-completion collaborator raised or timed out."""
    kind = "collaborator_error"


class StorageError(Exception):
    """Raised by key-value stores when a read or write fails."""
    pass


class QueryExecutionError(Exception):
    """Raised when registering tables or running SQL on the in-memory engine fails"""
    pass
