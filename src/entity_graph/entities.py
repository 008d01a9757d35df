"""Entity store: the aggregate root of the graph and its ownership gate."""

import sqlite3
from collections.abc import Mapping
from typing import Any

import structlog

from entity_graph.capabilities import capability_from_row, insert_capabilities
from entity_graph.database import Database, new_id, parse_timestamp, utcnow
from entity_graph.errors import ForbiddenError, NotFoundError, ValidationError
from entity_graph.links import insert_link, link_from_row
from entity_graph.models import Deletion, Entity
from entity_graph.validation import (
    optional_int,
    optional_text,
    reject_unknown,
    require_list,
    require_mapping,
    require_text,
)

logger = structlog.get_logger()

ENTITY_FIELDS = ("title", "content", "priority")


def _check_field(name: str, value: Any) -> Any:
    if name == "title":
        return require_text(value, "Entity title")
    if name == "content":
        return optional_text(value, "Entity content")
    return optional_int(value, "Entity priority")


class EntityStore:
    """Owns the lifecycle of entities and is the only place ownership is decided."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def require(self, conn: sqlite3.Connection, entity_id: str) -> sqlite3.Row:
        """Return the entity row, or raise NotFoundError."""
        row = conn.execute("SELECT * FROM entities WHERE id = ?", (entity_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Entity {entity_id} not found")
        return row

    def authorize(self, conn: sqlite3.Connection, entity_id: str, owner_id: str) -> sqlite3.Row:
        """Resolve an entity and check that ``owner_id`` owns it.

        Every capability and link operation routes through here.

        Raises:
            NotFoundError: no entity with that id
            ForbiddenError: the entity belongs to another owner
        """
        row = self.require(conn, entity_id)
        if row["owner_id"] != owner_id:
            logger.warning("Entity access denied", entity_id=entity_id, owner_id=owner_id)
            raise ForbiddenError(f"Access to entity {entity_id} is denied")
        return row

    def _hydrate(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Entity]:
        """Build entities with their capabilities and links, preserving row order."""
        entities = {
            row["id"]: Entity(
                id=row["id"],
                title=row["title"],
                owner_id=row["owner_id"],
                content=row["content"],
                priority=row["priority"],
                created_at=parse_timestamp(row["created_at"]),
                updated_at=parse_timestamp(row["updated_at"]),
            )
            for row in rows
        }
        if not entities:
            return []

        ids = list(entities)
        marks = ", ".join("?" for _ in ids)
        for row in conn.execute(
            f"SELECT * FROM capabilities WHERE entity_id IN ({marks}) ORDER BY created_at, rowid",
            ids,
        ):
            entities[row["entity_id"]].capabilities.append(capability_from_row(row))

        for row in conn.execute(
            f"SELECT * FROM links WHERE source_id IN ({marks}) OR target_id IN ({marks}) ORDER BY created_at, rowid",
            ids + ids,
        ):
            link = link_from_row(row)
            if link.source_id in entities:
                entities[link.source_id].outgoing_links.append(link)
            if link.target_id in entities:
                entities[link.target_id].incoming_links.append(link)

        logger.debug("Hydrated entities", count=len(entities))
        return list(entities.values())

    def _load(self, conn: sqlite3.Connection, entity_id: str) -> Entity:
        (entity,) = self._hydrate(conn, [self.require(conn, entity_id)])
        return entity

    def create(
        self,
        title: str,
        *,
        owner_id: str,
        content: str | None = None,
        priority: int | None = None,
        capabilities: Any = None,
        links: Any = None,
    ) -> Entity:
        """Create an entity with an optional initial capability and link batch.

        The entity, its capabilities and its outgoing links are written in one
        unit of work. Each link item is ``{"target_id": ..., "type": ...}``; the
        target only has to exist.
        """
        owner_id = require_text(owner_id, "owner_id")
        title = require_text(title, "Entity title")
        content = optional_text(content, "Entity content")
        priority = optional_int(priority, "Entity priority")

        entity_id, now = new_id(), utcnow()
        logger.info("Creating entity", title=title, owner_id=owner_id)
        with self.database.transaction() as conn:
            conn.execute(
                "INSERT INTO entities (id, title, content, priority, owner_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (entity_id, title, content, priority, owner_id, now, now),
            )
            if capabilities:
                insert_capabilities(conn, entity_id, capabilities)
            for position, item in enumerate(require_list(links or [], "Links"), start=1):
                item = require_mapping(item, f"Link #{position}")
                reject_unknown(item, ("target_id", "type"), f"Link #{position}")
                target_id = require_text(item.get("target_id"), f"Link #{position} target_id")
                self.require(conn, target_id)
                insert_link(conn, entity_id, target_id, item.get("type"))
            entity = self._load(conn, entity_id)

        logger.info(
            "Entity created",
            entity_id=entity_id,
            owner_id=owner_id,
            capabilities=len(entity.capabilities),
            links=len(entity.outgoing_links),
        )
        return entity

    def list_entities(self, *, owner_id: str, type: str | None = None, search: str | None = None) -> list[Entity]:
        """List the owner's entities, newest first.

        Args:
            owner_id: Caller identity
            type: Keep only entities with at least one capability of this type
            search: Case-insensitive substring matched against title or content
        """
        type = optional_text(type, "type filter")
        search = optional_text(search, "search filter")

        clauses = ["e.owner_id = ?"]
        params: list[Any] = [owner_id]
        if search:
            clauses.append("(icontains(e.title, ?) OR icontains(e.content, ?))")
            params.extend([search, search])
        if type:
            clauses.append("EXISTS (SELECT 1 FROM capabilities c WHERE c.entity_id = e.id AND c.type = ?)")
            params.append(type)

        with self.database.connection() as conn:
            rows = conn.execute(
                f"SELECT e.* FROM entities e WHERE {' AND '.join(clauses)} ORDER BY e.created_at DESC, e.rowid DESC",
                params,
            ).fetchall()
            entities = self._hydrate(conn, rows)

        logger.debug("Listed entities", owner_id=owner_id, type=type, search=search, count=len(entities))
        return entities

    def get(self, entity_id: str, *, owner_id: str) -> Entity:
        with self.database.connection() as conn:
            self.authorize(conn, entity_id, owner_id)
            return self._load(conn, entity_id)

    def update(
        self,
        entity_id: str,
        changes: Mapping[str, Any],
        *,
        owner_id: str,
        capabilities: Any = None,
    ) -> Entity:
        """Apply the fields present in ``changes`` and append ``capabilities``.

        Only keys present are written, so ``{"content": None}`` clears content
        while a missing ``content`` key leaves it alone. The owner is immutable.
        """
        with self.database.transaction() as conn:
            self.authorize(conn, entity_id, owner_id)

            changes = dict(require_mapping(changes, "Entity update"))
            if "owner_id" in changes:
                raise ValidationError("The owner of an entity cannot be changed")
            reject_unknown(changes, ENTITY_FIELDS, "entity")
            values = {name: _check_field(name, value) for name, value in changes.items()}

            assignments = "".join(f"{name} = ?, " for name in values)
            conn.execute(
                f"UPDATE entities SET {assignments}updated_at = ? WHERE id = ?",
                (*values.values(), utcnow(), entity_id),
            )
            if capabilities:
                insert_capabilities(conn, entity_id, capabilities)
            entity = self._load(conn, entity_id)

        logger.info("Entity updated", entity_id=entity_id, owner_id=owner_id, fields=sorted(values))
        return entity

    def delete(self, entity_id: str, *, owner_id: str) -> Deletion:
        """Delete an entity; its capabilities and links on either side cascade."""
        with self.database.transaction() as conn:
            self.authorize(conn, entity_id, owner_id)
            conn.execute("DELETE FROM entities WHERE id = ?", (entity_id,))

        logger.warning("Entity deleted", entity_id=entity_id, owner_id=owner_id)
        return Deletion(kind="entity", id=entity_id)
