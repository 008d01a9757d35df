"""Link management commands for entity graph CLI."""

from cyclopts import App

link_app = App(name="link", help="Manage links between entities")


@link_app.command
def add(
    source_id: str,
    *target_ids: str,
    type: str = "relates_to",
    owner: str | None = None,
) -> None:
    """Add links from source entity to target entities.

    Targets may belong to other owners; the source must be yours.
    """
    from entity_graph.cli import get_service, resolve_owner

    owner_id = resolve_owner(owner)
    with get_service() as service:
        for target_id in target_ids:
            service.create_link(source_id, target_id, type, owner_id)
    print(f"Added {len(target_ids)} link(s) from {source_id}")


@link_app.command(name="list")
def list_links(
    entity_id: str,
    type: str | None = None,
    owner: str | None = None,
) -> None:
    """List the links going out of and coming into an entity."""
    from entity_graph.cli import get_service, resolve_owner

    with get_service() as service:
        links = service.list_links(entity_id, resolve_owner(owner), type)

    if not links:
        print(f"No links found for entity {entity_id}")
        return

    print(f"Links for entity {entity_id}:\n")
    for link in links:
        print(f"  {link.source_id} --[{link.type}]--> {link.target_id}")
