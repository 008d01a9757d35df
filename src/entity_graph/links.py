"""Link store: directed, typed edges between entities."""

import sqlite3
from typing import TYPE_CHECKING

import structlog

from entity_graph.database import Database, new_id, parse_timestamp, utcnow
from entity_graph.errors import ConflictError, ValidationError
from entity_graph.models import Link
from entity_graph.validation import require_text

if TYPE_CHECKING:
    from entity_graph.entities import EntityStore

logger = structlog.get_logger()


def link_from_row(row: sqlite3.Row) -> Link:
    return Link(
        id=row["id"],
        source_id=row["source_id"],
        target_id=row["target_id"],
        type=row["type"],
        created_at=parse_timestamp(row["created_at"]),
    )


def insert_link(conn: sqlite3.Connection, source_id: str, target_id: str, link_type: str) -> Link:
    """Insert one edge, translating a duplicate into ConflictError.

    Other integrity failures propagate to the unit of work unchanged.
    """
    link_type = require_text(link_type, "Link type")
    if source_id == target_id:
        raise ValidationError("An entity cannot be linked to itself")

    link_id, created_at = new_id(), utcnow()
    try:
        conn.execute(
            "INSERT INTO links (id, type, source_id, target_id, created_at) VALUES (?, ?, ?, ?, ?)",
            (link_id, link_type, source_id, target_id, created_at),
        )
    except sqlite3.IntegrityError as e:
        if e.sqlite_errorname == "SQLITE_CONSTRAINT_UNIQUE":
            logger.info("Duplicate link rejected", source_id=source_id, target_id=target_id, link_type=link_type)
            raise ConflictError(f"Link {source_id} -[{link_type}]-> {target_id} already exists") from e
        raise

    return Link(
        id=link_id,
        source_id=source_id,
        target_id=target_id,
        type=link_type,
        created_at=parse_timestamp(created_at),
    )


class LinkStore:
    """Edges are created from an owned source to any existing target."""

    def __init__(self, database: Database, entities: "EntityStore") -> None:
        self.database = database
        self.entities = entities

    def create(self, source_id: str, target_id: str, link_type: str, *, owner_id: str) -> Link:
        """Link ``source_id`` to ``target_id``.

        The source must belong to ``owner_id``; the target only has to exist, so
        links may point at other users' entities.

        Raises:
            ValidationError: missing ids, empty type or a self-link
            NotFoundError: source or target does not exist
            ForbiddenError: source belongs to someone else
            ConflictError: the same (source, target, type) edge already exists
        """
        require_text(source_id, "source_id")
        require_text(target_id, "target_id")
        require_text(link_type, "Link type")
        if source_id == target_id:
            raise ValidationError("An entity cannot be linked to itself")

        logger.info("Creating link", source_id=source_id, target_id=target_id, link_type=link_type)
        with self.database.transaction() as conn:
            self.entities.authorize(conn, source_id, owner_id)
            self.entities.require(conn, target_id)
            link = insert_link(conn, source_id, target_id, link_type)

        logger.info("Link created", link_id=link.id, source_id=source_id, target_id=target_id, link_type=link_type)
        return link

    def list_links(self, entity_id: str, *, owner_id: str, link_type: str | None = None) -> list[Link]:
        """One-hop listing of outgoing and incoming links of an owned entity, newest first."""
        clauses = ["(source_id = ? OR target_id = ?)"]
        params = [entity_id, entity_id]
        if link_type:
            clauses.append("type = ?")
            params.append(link_type)

        with self.database.connection() as conn:
            self.entities.authorize(conn, entity_id, owner_id)
            rows = conn.execute(
                f"SELECT * FROM links WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, rowid DESC",
                params,
            ).fetchall()

        logger.debug("Retrieved entity links", entity_id=entity_id, link_type=link_type, count=len(rows))
        return [link_from_row(row) for row in rows]
