"""Data models for the entity graph."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Capability:
    """A typed, structured attribute attached to an entity."""

    id: str
    type: str
    entity_id: str
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class Link:
    """Represents a directed, typed edge between two entities."""

    id: str
    source_id: str
    target_id: str
    type: str = "relates_to"
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class Entity:
    """Represents a note or task owned by a single principal."""

    id: str
    title: str
    owner_id: str
    content: str | None = None
    priority: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    capabilities: list[Capability] = field(default_factory=list)
    outgoing_links: list[Link] = field(default_factory=list)
    incoming_links: list[Link] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class Deletion:
    """Confirmation returned by delete operations."""

    kind: str
    id: str

    @property
    def message(self) -> str:
        return f"{self.kind.capitalize()} {self.id} deleted"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "id": self.id, "message": self.message}


def _plain(value: Any) -> Any:
    """Render datetimes as ISO strings so results are JSON-ready."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value
