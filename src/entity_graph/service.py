"""Graph service: the operation contract callers drive the graph through.

Every method takes plain structured arguments plus the caller's ``owner_id``
and returns model objects (``to_dict()`` for plain data) or raises one of the
``entity_graph.errors`` kinds. Authorization is left entirely to the stores.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from entity_graph.capabilities import CapabilityStore
from entity_graph.config import Settings
from entity_graph.database import Database
from entity_graph.entities import ENTITY_FIELDS, EntityStore
from entity_graph.keepalive import KeepAlive
from entity_graph.links import LinkStore
from entity_graph.models import Capability, Deletion, Entity, Link
from entity_graph.validation import reject_unknown, require_mapping, require_text

logger = structlog.get_logger()

# Identity is supplied by the caller's auth layer, never by the payload.
IDENTITY_FIELDS = ("owner_id", "user_id")


def _identity(owner_id: Any) -> str:
    return require_text(owner_id, "owner_id")


def _payload(payload: Any, name: str) -> dict[str, Any]:
    return dict(require_mapping(payload, name))


class GraphService:
    """Composes the entity, capability and link stores over one database."""

    def __init__(self, database: Database, keepalive: KeepAlive | None = None) -> None:
        self.database = database
        self.keepalive = keepalive
        self.entities = EntityStore(database)
        self.capabilities = CapabilityStore(database, self.entities)
        self.links = LinkStore(database, self.entities)

    @classmethod
    def open(cls, settings: Settings, keepalive: bool = True) -> "GraphService":
        """Open the configured database and, optionally, start the liveness probe."""
        database = Database(settings.database_path, pool_size=settings.pool_size, timeout=settings.timeout)
        probe = KeepAlive(database, interval=settings.keepalive_interval) if keepalive else None
        service = cls(database, keepalive=probe)
        if probe is not None:
            probe.start()
        logger.info("Graph service opened", path=str(settings.database_path), keepalive=keepalive)
        return service

    def close(self) -> None:
        if self.keepalive is not None:
            self.keepalive.stop()
        self.database.close()

    def __enter__(self) -> "GraphService":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def ping(self) -> None:
        self.database.ping()

    # --- Entities ---

    def create_entity(self, payload: Mapping[str, Any], owner_id: str) -> Entity:
        """Create an entity; nested ``capabilities`` and ``links`` lists are written with it."""
        owner_id = _identity(owner_id)
        fields = _payload(payload, "Entity payload")
        for name in IDENTITY_FIELDS:
            fields.pop(name, None)
        capabilities = fields.pop("capabilities", None)
        links = fields.pop("links", None)
        reject_unknown(fields, ENTITY_FIELDS, "entity")

        return self.entities.create(
            fields.get("title"),
            owner_id=owner_id,
            content=fields.get("content"),
            priority=fields.get("priority"),
            capabilities=capabilities,
            links=links,
        )

    def list_entities(self, owner_id: str, filters: Mapping[str, Any] | None = None) -> list[Entity]:
        filters = _payload(filters or {}, "Entity filters")
        reject_unknown(filters, ("type", "search"), "entity filter")
        return self.entities.list_entities(
            owner_id=_identity(owner_id),
            type=filters.get("type"),
            search=filters.get("search"),
        )

    def get_entity(self, entity_id: str, owner_id: str) -> Entity:
        return self.entities.get(entity_id, owner_id=_identity(owner_id))

    def update_entity(self, entity_id: str, payload: Mapping[str, Any], owner_id: str) -> Entity:
        """Patch an entity; a nested ``capabilities`` list is appended, never replaced."""
        owner_id = _identity(owner_id)
        fields = _payload(payload, "Entity payload")
        capabilities = fields.pop("capabilities", None)
        return self.entities.update(entity_id, fields, owner_id=owner_id, capabilities=capabilities)

    def delete_entity(self, entity_id: str, owner_id: str) -> Deletion:
        return self.entities.delete(entity_id, owner_id=_identity(owner_id))

    def add_capability(self, entity_id: str, payload: Mapping[str, Any], owner_id: str) -> Capability:
        """Attach one ``{type, data}`` capability to an existing entity."""
        fields = _payload(payload, "Capability payload")
        reject_unknown(fields, ("type", "data"), "capability")
        return self.capabilities.create(
            entity_id,
            fields.get("type"),
            fields.get("data"),
            owner_id=_identity(owner_id),
        )

    def link_entities(self, source_id: str, payload: Mapping[str, Any], owner_id: str) -> Link:
        """Link from ``source_id`` using a ``{target_id, type}`` payload."""
        fields = _payload(payload, "Link payload")
        reject_unknown(fields, ("target_id", "type"), "link")
        return self.create_link(source_id, fields.get("target_id"), fields.get("type"), owner_id)

    # --- Capabilities ---

    def create_capability(self, payload: Mapping[str, Any], owner_id: str) -> Capability:
        fields = _payload(payload, "Capability payload")
        reject_unknown(fields, ("entity_id", "type", "data"), "capability")
        return self.capabilities.create(
            fields.get("entity_id"),
            fields.get("type"),
            fields.get("data"),
            owner_id=_identity(owner_id),
        )

    def list_capabilities(self, owner_id: str, filters: Mapping[str, Any] | None = None) -> list[Capability]:
        filters = _payload(filters or {}, "Capability filters")
        reject_unknown(filters, ("type", "entity_id"), "capability filter")
        return self.capabilities.list_capabilities(
            owner_id=_identity(owner_id),
            type=filters.get("type"),
            entity_id=filters.get("entity_id"),
        )

    def get_capability(self, capability_id: str, owner_id: str) -> Capability:
        return self.capabilities.get(capability_id, owner_id=_identity(owner_id))

    def update_capability(self, capability_id: str, payload: Mapping[str, Any], owner_id: str) -> Capability:
        return self.capabilities.update(capability_id, payload, owner_id=_identity(owner_id))

    def delete_capability(self, capability_id: str, owner_id: str) -> Deletion:
        return self.capabilities.delete(capability_id, owner_id=_identity(owner_id))

    def list_capabilities_by_entity(self, entity_id: str, owner_id: str) -> list[Capability]:
        return self.capabilities.list_by_entity(entity_id, owner_id=_identity(owner_id))

    def create_capabilities(self, entity_id: str, items: Any, owner_id: str) -> list[Capability]:
        """Bulk-insert capabilities for one entity, all or nothing."""
        return self.capabilities.create_many(entity_id, items, owner_id=_identity(owner_id))

    # --- Links ---

    def create_link(self, source_id: str, target_id: str, type: str, owner_id: str) -> Link:
        return self.links.create(source_id, target_id, type, owner_id=_identity(owner_id))

    def list_links(self, entity_id: str, owner_id: str, type: str | None = None) -> list[Link]:
        return self.links.list_links(entity_id, owner_id=_identity(owner_id), link_type=type)
