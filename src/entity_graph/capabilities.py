"""Capability store: typed attribute records attached to entities."""

import json
import sqlite3
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from entity_graph.database import Database, new_id, parse_timestamp, utcnow
from entity_graph.errors import NotFoundError, ValidationError
from entity_graph.models import Capability, Deletion
from entity_graph.validation import reject_unknown, require_list, require_mapping, require_text

if TYPE_CHECKING:
    from entity_graph.entities import EntityStore

logger = structlog.get_logger()

ITEM_FIELDS = ("type", "data")


def normalize_data(data: Any) -> dict[str, Any]:
    """Validate a capability payload, defaulting a missing one to an empty mapping."""
    if data is None:
        return {}
    data = require_mapping(data, "Capability data")
    if not all(isinstance(key, str) for key in data):
        raise ValidationError("Capability data keys must be strings")
    return dict(data)


def encode_data(data: dict[str, Any]) -> str:
    try:
        return json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Capability data is not JSON-serializable: {e}") from e


def capability_from_row(row: sqlite3.Row) -> Capability:
    return Capability(
        id=row["id"],
        type=row["type"],
        entity_id=row["entity_id"],
        data=json.loads(row["data"] or "{}"),
        created_at=parse_timestamp(row["created_at"]),
    )


def insert_capabilities(conn: sqlite3.Connection, entity_id: str, items: Any) -> list[Capability]:
    """Insert a batch of ``{type, data?}`` items for one entity.

    Must run inside a unit of work: a malformed item raises ValidationError
    and the caller's transaction discards the items inserted before it.
    """
    created = []
    for position, item in enumerate(require_list(items, "Capabilities"), start=1):
        label = f"Capability #{position}"
        item = require_mapping(item, label)
        reject_unknown(item, ITEM_FIELDS, label)
        capability_type = require_text(item.get("type"), f"{label} type")
        data = normalize_data(item.get("data"))

        capability_id, created_at = new_id(), utcnow()
        encoded = encode_data(data)
        conn.execute(
            "INSERT INTO capabilities (id, type, data, entity_id, created_at) VALUES (?, ?, ?, ?, ?)",
            (capability_id, capability_type, encoded, entity_id, created_at),
        )
        # decoded from what was stored so the result matches a later read
        created.append(
            Capability(
                id=capability_id,
                type=capability_type,
                entity_id=entity_id,
                data=json.loads(encoded),
                created_at=parse_timestamp(created_at),
            )
        )
    return created


class CapabilityStore:
    """Capabilities are authorized through their owning entity."""

    def __init__(self, database: Database, entities: "EntityStore") -> None:
        self.database = database
        self.entities = entities

    def _fetch(self, conn: sqlite3.Connection, capability_id: str, owner_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM capabilities WHERE id = ?", (capability_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Capability {capability_id} not found")
        self.entities.authorize(conn, row["entity_id"], owner_id)
        return row

    def _for_entity(self, conn: sqlite3.Connection, entity_id: str) -> list[Capability]:
        rows = conn.execute(
            "SELECT * FROM capabilities WHERE entity_id = ? ORDER BY created_at DESC, rowid DESC",
            (entity_id,),
        ).fetchall()
        return [capability_from_row(row) for row in rows]

    def create(self, entity_id: str, type: str, data: Any = None, *, owner_id: str) -> Capability:
        """Attach a new capability to an entity owned by ``owner_id``."""
        if not isinstance(entity_id, str) or not entity_id:
            raise ValidationError("entity_id is required")

        with self.database.transaction() as conn:
            entity = self.entities.authorize(conn, entity_id, owner_id)
            (capability,) = insert_capabilities(conn, entity["id"], [{"type": type, "data": data}])

        logger.info(
            "Capability created",
            capability_id=capability.id,
            type=capability.type,
            entity_id=entity_id,
            owner_id=owner_id,
        )
        return capability

    def list_capabilities(
        self,
        *,
        owner_id: str,
        type: str | None = None,
        entity_id: str | None = None,
    ) -> list[Capability]:
        """List capabilities on the caller's entities, newest first."""
        clauses = ["e.owner_id = ?"]
        params: list[Any] = [owner_id]
        if type:
            clauses.append("c.type = ?")
            params.append(type)
        if entity_id:
            clauses.append("c.entity_id = ?")
            params.append(entity_id)

        query = (
            "SELECT c.* FROM capabilities c JOIN entities e ON e.id = c.entity_id "
            f"WHERE {' AND '.join(clauses)} ORDER BY c.created_at DESC, c.rowid DESC"
        )
        with self.database.connection() as conn:
            rows = conn.execute(query, params).fetchall()

        logger.debug("Listed capabilities", owner_id=owner_id, type=type, entity_id=entity_id, count=len(rows))
        return [capability_from_row(row) for row in rows]

    def get(self, capability_id: str, *, owner_id: str) -> Capability:
        with self.database.connection() as conn:
            return capability_from_row(self._fetch(conn, capability_id, owner_id))

    def update(self, capability_id: str, changes: Mapping[str, Any], *, owner_id: str) -> Capability:
        """Apply the supplied ``type``/``data``; fields that are absent or None stay unchanged."""
        with self.database.transaction() as conn:
            existing = self._fetch(conn, capability_id, owner_id)

            changes = require_mapping(changes, "Capability update")
            reject_unknown(changes, ("type", "data", "entity_id"), "capability")
            moved_to = changes.get("entity_id")
            if moved_to is not None and moved_to != existing["entity_id"]:
                raise ValidationError("A capability cannot be moved to another entity")

            capability_type = existing["type"]
            if changes.get("type") is not None:
                capability_type = require_text(changes["type"], "Capability type")
            encoded = existing["data"]
            if changes.get("data") is not None:
                encoded = encode_data(normalize_data(changes["data"]))

            conn.execute(
                "UPDATE capabilities SET type = ?, data = ? WHERE id = ?",
                (capability_type, encoded, capability_id),
            )
            row = conn.execute("SELECT * FROM capabilities WHERE id = ?", (capability_id,)).fetchone()

        logger.info("Capability updated", capability_id=capability_id, owner_id=owner_id)
        return capability_from_row(row)

    def delete(self, capability_id: str, *, owner_id: str) -> Deletion:
        with self.database.transaction() as conn:
            self._fetch(conn, capability_id, owner_id)
            conn.execute("DELETE FROM capabilities WHERE id = ?", (capability_id,))

        logger.warning("Capability deleted", capability_id=capability_id, owner_id=owner_id)
        return Deletion(kind="capability", id=capability_id)

    def list_by_entity(self, entity_id: str, *, owner_id: str) -> list[Capability]:
        """All capabilities of one owned entity, newest first."""
        with self.database.connection() as conn:
            self.entities.authorize(conn, entity_id, owner_id)
            return self._for_entity(conn, entity_id)

    def create_many(self, entity_id: str, items: Any, *, owner_id: str) -> list[Capability]:
        """Insert a batch atomically and return the entity's refreshed capability list."""
        with self.database.transaction() as conn:
            self.entities.authorize(conn, entity_id, owner_id)
            created = insert_capabilities(conn, entity_id, items)
            capabilities = self._for_entity(conn, entity_id)

        logger.info("Capabilities created", entity_id=entity_id, count=len(created), owner_id=owner_id)
        return capabilities
