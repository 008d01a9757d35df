"""Capability management commands for entity graph CLI."""

import json

from cyclopts import App

from entity_graph.models import Capability

capability_app = App(name="capability", help="Manage capabilities attached to entities")


def _describe(capability: Capability) -> str:
    data = json.dumps(capability.data, ensure_ascii=False)
    return f"{capability.id} [{capability.type}] on {capability.entity_id}: {data}"


@capability_app.command
def add(entity_id: str, type: str, data: str = "{}", owner: str | None = None) -> None:
    """Attach a capability to an entity.

    Args:
        entity_id: Entity to attach to
        type: Capability type tag, e.g. "task"
        data: JSON object payload
        owner: Owner identity (defaults to the configured owner)
    """
    from entity_graph.cli import get_service, parse_json, resolve_owner

    payload = {"entity_id": entity_id, "type": type, "data": parse_json(data, "data")}
    with get_service() as service:
        capability = service.create_capability(payload, resolve_owner(owner))
    print(f"Created capability {_describe(capability)}")


@capability_app.command
def bulk(entity_id: str, items: str, owner: str | None = None) -> None:
    """Attach a JSON list of capabilities to an entity in one step; nothing is saved if any item is invalid."""
    from entity_graph.cli import get_service, parse_json, resolve_owner

    with get_service() as service:
        capabilities = service.create_capabilities(entity_id, parse_json(items, "items"), resolve_owner(owner))
    print(f"Entity {entity_id} now has {len(capabilities)} capability(ies)")


@capability_app.command(name="list")
def list_capabilities(
    type: str | None = None,
    entity: str | None = None,
    owner: str | None = None,
) -> None:
    """List your capabilities, newest first."""
    from entity_graph.cli import get_service, resolve_owner

    owner_id = resolve_owner(owner)
    with get_service() as service:
        if entity:
            capabilities = service.list_capabilities_by_entity(entity, owner_id)
            if type:
                capabilities = [c for c in capabilities if c.type == type]
        else:
            capabilities = service.list_capabilities(owner_id, {"type": type})

    if not capabilities:
        print("No capabilities found")
        return
    for capability in capabilities:
        print(_describe(capability))


@capability_app.command
def show(capability_id: str, owner: str | None = None) -> None:
    """Show one capability."""
    from entity_graph.cli import get_service, print_json, resolve_owner

    with get_service() as service:
        capability = service.get_capability(capability_id, resolve_owner(owner))
    print_json(capability.to_dict())


@capability_app.command
def update(
    capability_id: str,
    type: str | None = None,
    data: str | None = None,
    owner: str | None = None,
) -> None:
    """Change a capability's type and/or replace its data."""
    from entity_graph.cli import get_service, parse_json, resolve_owner

    payload = {"type": type, "data": parse_json(data, "data") if data is not None else None}
    with get_service() as service:
        capability = service.update_capability(capability_id, payload, resolve_owner(owner))
    print(f"Updated capability {_describe(capability)}")


@capability_app.command
def remove(capability_id: str, owner: str | None = None) -> None:
    """Delete a capability."""
    from entity_graph.cli import get_service, resolve_owner

    with get_service() as service:
        print(service.delete_capability(capability_id, resolve_owner(owner)).message)
