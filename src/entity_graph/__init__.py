"""Entity graph: owned entities with typed capabilities and directed links."""

from entity_graph.errors import (
    ConflictError,
    FatalError,
    ForbiddenError,
    GraphError,
    NotFoundError,
    ValidationError,
)
from entity_graph.models import Capability, Deletion, Entity, Link
from entity_graph.service import GraphService

__all__ = [
    "Capability",
    "ConflictError",
    "Deletion",
    "Entity",
    "FatalError",
    "ForbiddenError",
    "GraphError",
    "GraphService",
    "Link",
    "NotFoundError",
    "ValidationError",
]
