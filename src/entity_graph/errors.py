"""Error taxonomy raised by the graph stores."""


class GraphError(Exception):
    """Base class for every failure the graph core reports."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GraphError):
    """Malformed or missing input."""

    kind = "validation"


class NotFoundError(GraphError):
    """The referenced record does not exist."""

    kind = "not_found"


class ForbiddenError(GraphError):
    """The record exists but belongs to another owner."""

    kind = "forbidden"


class ConflictError(GraphError):
    """A uniqueness constraint rejected the write."""

    kind = "conflict"


class FatalError(GraphError):
    """Unexpected persistence failure.

    The original driver exception is kept as ``__cause__``.
    """

    kind = "fatal"
