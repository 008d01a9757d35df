"""CLI for entity graph."""

import json
import sys
from typing import Annotated, Any, Literal

import structlog
from cyclopts import App, Parameter

from entity_graph.capability_commands import capability_app
from entity_graph.config import get_config, load_settings
from entity_graph.config_commands import config_app
from entity_graph.errors import GraphError, ValidationError
from entity_graph.link_commands import link_app
from entity_graph.models import Entity
from entity_graph.service import GraphService

logger = structlog.get_logger()

app = App(
    help="Entity Graph - a personal knowledge and task graph",
)

app.command(capability_app)
app.command(link_app)
app.command(config_app)


def configure_logging(log_level: str) -> None:
    """Configure structlog with the specified log level."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(min_level=log_level.lower()))


def get_service() -> GraphService:
    """Open the graph configured for the current directory."""
    settings = load_settings(get_config())
    return GraphService.open(settings, keepalive=False)


def resolve_owner(owner: str | None) -> str:
    """Use ``--owner`` if given, else the configured default identity."""
    owner = owner or get_config().get("owner")
    if not owner:
        raise ValidationError(
            "No owner given. Pass --owner or set a default using:\n  entity-graph config set owner <id>"
        )
    return str(owner)


def parse_json(value: str, name: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{name} is not valid JSON: {e}") from e


def print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def print_entity(entity: Entity) -> None:
    print(f"Entity: {entity.id}")
    print(f"Title: {entity.title}")
    if entity.content:
        print(f"Content: {entity.content}")
    if entity.priority is not None:
        print(f"Priority: {entity.priority}")
    for capability in entity.capabilities:
        print(f"  [{capability.type}] {capability.id} {json.dumps(capability.data, ensure_ascii=False)}")
    for link in entity.outgoing_links:
        print(f"  --[{link.type}]--> {link.target_id}")
    for link in entity.incoming_links:
        print(f"  <--[{link.type}]-- {link.source_id}")


@app.command
def create(
    title: str,
    content: str | None = None,
    priority: int | None = None,
    capabilities: str = "",
    owner: str | None = None,
) -> None:
    """Create a new entity.

    Args:
        title: Entity title
        content: Optional body text
        priority: Optional integer priority
        capabilities: JSON list of {"type": ..., "data": {...}} items created with the entity
        owner: Owner identity (defaults to the configured owner)
    """
    payload: dict[str, Any] = {"title": title, "content": content, "priority": priority}
    if capabilities:
        payload["capabilities"] = parse_json(capabilities, "capabilities")

    with get_service() as service:
        entity = service.create_entity(payload, resolve_owner(owner))
    print(f"Created entity {entity.id}: {entity.title}")


@app.command
def read(entity_id: str, owner: str | None = None, json_: bool = False) -> None:
    """Read an entity by ID."""
    with get_service() as service:
        entity = service.get_entity(entity_id, resolve_owner(owner))

    if json_:
        print_json(entity.to_dict())
    else:
        print_entity(entity)


@app.command
def update(
    entity_id: str,
    title: str | None = None,
    content: str | None = None,
    priority: int | None = None,
    capabilities: str = "",
    owner: str | None = None,
) -> None:
    """Update an entity. Capabilities given here are appended to the existing ones."""
    payload: dict[str, Any] = {}
    if title is not None:
        payload["title"] = title
    if content is not None:
        payload["content"] = content
    if priority is not None:
        payload["priority"] = priority
    if capabilities:
        payload["capabilities"] = parse_json(capabilities, "capabilities")

    with get_service() as service:
        entity = service.update_entity(entity_id, payload, resolve_owner(owner))
    print(f"Updated entity {entity.id}: {entity.title}")


@app.command
def delete(*entity_ids: str, owner: str | None = None) -> None:
    """Delete one or more entities, along with their capabilities and links."""
    owner_id = resolve_owner(owner)
    with get_service() as service:
        for entity_id in entity_ids:
            print(service.delete_entity(entity_id, owner_id).message)


@app.command(name="list")
def list_entities(
    type: str | None = None,
    search: str | None = None,
    owner: str | None = None,
    json_: bool = False,
) -> None:
    """List entities, newest first, optionally filtered by capability type and text search."""
    with get_service() as service:
        entities = service.list_entities(resolve_owner(owner), {"type": type, "search": search})

    if json_:
        print_json([entity.to_dict() for entity in entities])
        return

    print(f"Found {len(entities)} entity(ies):\n")
    for entity in entities:
        types_str = ""
        if entity.capabilities:
            types_str = " [" + ", ".join(sorted({c.type for c in entity.capabilities})) + "]"
        print(f"● {entity.id}: {entity.title}{types_str}")


@app.command
def ping() -> None:
    """Check that the configured database is reachable."""
    with get_service() as service:
        service.ping()
    print("ok")


@app.meta.default
def main(
    *tokens: Annotated[str, Parameter(show=False, allow_leading_hyphen=True)],
    log_level: Literal["debug", "info", "warning", "error", "critical"] = "critical",
) -> None:
    """Main entry point with global options."""
    configure_logging(log_level)
    try:
        app(tokens)
    except GraphError as e:
        print(f"Error: {e.kind}: {e.message}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        # configuration problems
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    app.meta()
