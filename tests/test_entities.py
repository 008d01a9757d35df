"""Tests for the entity store."""

import pytest

from entity_graph.database import Database
from entity_graph.entities import EntityStore
from entity_graph.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError

ALICE = "alice"
BOB = "bob"


@pytest.fixture
def entities(database: Database) -> EntityStore:
    """Entity store over a fresh database."""
    return EntityStore(database)


def test_create_entity(entities: EntityStore) -> None:
    """Test creating a plain entity."""
    entity = entities.create("Write report", owner_id=ALICE, content="Q3 numbers", priority=2)

    assert entity.id
    assert entity.title == "Write report"
    assert entity.content == "Q3 numbers"
    assert entity.priority == 2
    assert entity.owner_id == ALICE
    assert entity.created_at is not None
    assert entity.created_at == entity.updated_at
    assert entity.capabilities == []


def test_create_entity_with_capabilities(entities: EntityStore) -> None:
    """Test the initial capability batch is bound to the new entity."""
    entity = entities.create(
        "Buy milk",
        owner_id=ALICE,
        capabilities=[{"type": "task", "data": {"done": False}}, {"type": "reminder"}],
    )

    assert [c.type for c in entity.capabilities] == ["task", "reminder"]
    assert entity.capabilities[0].data == {"done": False}
    assert entity.capabilities[1].data == {}
    assert all(c.entity_id == entity.id for c in entity.capabilities)


@pytest.mark.parametrize("title", ["", "   ", None, 42])
def test_create_entity_requires_title(entities: EntityStore, title: object) -> None:
    """Test a missing or blank title is rejected."""
    with pytest.raises(ValidationError):
        entities.create(title, owner_id=ALICE)


@pytest.mark.parametrize("priority", ["high", 1.5, True])
def test_create_entity_rejects_bad_priority(entities: EntityStore, priority: object) -> None:
    """Test priority must be an integer."""
    with pytest.raises(ValidationError):
        entities.create("Task", owner_id=ALICE, priority=priority)


def test_create_entity_with_bad_capability_persists_nothing(entities: EntityStore, count_rows) -> None:
    """Test a malformed capability rolls back the entity as well."""
    with pytest.raises(ValidationError):
        entities.create("Task", owner_id=ALICE, capabilities=[{"type": "task"}, {"data": {}}])

    assert count_rows("entities") == 0
    assert count_rows("capabilities") == 0


def test_create_entity_with_links(entities: EntityStore) -> None:
    """Test initial links point from the new entity to existing targets, any owner."""
    mine = entities.create("Mine", owner_id=ALICE)
    theirs = entities.create("Theirs", owner_id=BOB)

    entity = entities.create(
        "Hub",
        owner_id=ALICE,
        links=[{"target_id": mine.id, "type": "relates_to"}, {"target_id": theirs.id, "type": "cites"}],
    )

    assert {(link.target_id, link.type) for link in entity.outgoing_links} == {
        (mine.id, "relates_to"),
        (theirs.id, "cites"),
    }
    assert entities.get(mine.id, owner_id=ALICE).incoming_links[0].source_id == entity.id


def test_create_entity_with_missing_link_target(entities: EntityStore, count_rows) -> None:
    """Test an unknown link target aborts the whole creation."""
    with pytest.raises(NotFoundError):
        entities.create("Hub", owner_id=ALICE, links=[{"target_id": "missing", "type": "relates_to"}])
    assert count_rows("entities") == 0


def test_create_entity_with_duplicate_links(entities: EntityStore, count_rows) -> None:
    """Test a repeated edge in the initial batch is a conflict and nothing is kept."""
    target = entities.create("Target", owner_id=ALICE)
    edge = {"target_id": target.id, "type": "relates_to"}

    with pytest.raises(ConflictError):
        entities.create("Hub", owner_id=ALICE, links=[edge, edge])

    assert count_rows("entities") == 1
    assert count_rows("links") == 0


def test_get_entity_not_found(entities: EntityStore) -> None:
    """Test reading an unknown id."""
    with pytest.raises(NotFoundError):
        entities.get("missing", owner_id=ALICE)


def test_get_entity_of_another_owner(entities: EntityStore) -> None:
    """Test another user's entity is forbidden, not hidden."""
    entity = entities.create("Private", owner_id=ALICE)
    with pytest.raises(ForbiddenError):
        entities.get(entity.id, owner_id=BOB)


def test_list_entities_newest_first(entities: EntityStore) -> None:
    """Test listing returns only the owner's entities, most recent first."""
    first = entities.create("First", owner_id=ALICE)
    second = entities.create("Second", owner_id=ALICE)
    entities.create("Other", owner_id=BOB)

    assert [e.id for e in entities.list_entities(owner_id=ALICE)] == [second.id, first.id]


def test_list_entities_search(entities: EntityStore) -> None:
    """Test search matches title or content regardless of case."""
    by_title = entities.create("Buy MILK", owner_id=ALICE)
    by_content = entities.create("Groceries", owner_id=ALICE, content="eggs and milk")
    entities.create("Call mom", owner_id=ALICE)
    entities.create("Milk for Bob", owner_id=BOB)

    found = entities.list_entities(owner_id=ALICE, search="Milk")

    assert [e.id for e in found] == [by_content.id, by_title.id]


def test_list_entities_by_capability_type(entities: EntityStore) -> None:
    """Test the type filter keeps entities with at least one matching capability."""
    task = entities.create("Buy milk", owner_id=ALICE, capabilities=[{"type": "task"}])
    entities.create("Idea", owner_id=ALICE, capabilities=[{"type": "note"}])
    entities.create("Plain", owner_id=ALICE)
    other_task = entities.create("Ship", owner_id=ALICE, capabilities=[{"type": "note"}, {"type": "task"}])

    found = entities.list_entities(owner_id=ALICE, type="task")

    assert [e.id for e in found] == [other_task.id, task.id]
    assert all(any(c.type == "task" for c in e.capabilities) for e in found)


def test_list_entities_filters_are_combined(entities: EntityStore) -> None:
    """Test search and type must both match."""
    match = entities.create("Buy milk", owner_id=ALICE, capabilities=[{"type": "task"}])
    entities.create("Buy milk notes", owner_id=ALICE, capabilities=[{"type": "note"}])
    entities.create("Walk dog", owner_id=ALICE, capabilities=[{"type": "task"}])

    found = entities.list_entities(owner_id=ALICE, type="task", search="milk")

    assert [e.id for e in found] == [match.id]


def test_list_entities_includes_links(entities: EntityStore) -> None:
    """Test listed entities carry outgoing and incoming links."""
    target = entities.create("Target", owner_id=ALICE)
    source = entities.create("Source", owner_id=ALICE, links=[{"target_id": target.id, "type": "blocks"}])

    listed = {e.id: e for e in entities.list_entities(owner_id=ALICE)}

    assert [link.target_id for link in listed[source.id].outgoing_links] == [target.id]
    assert [link.source_id for link in listed[target.id].incoming_links] == [source.id]


def test_update_entity_partial(entities: EntityStore) -> None:
    """Test only supplied fields change."""
    entity = entities.create("Old", owner_id=ALICE, content="body", priority=1)

    updated = entities.update(entity.id, {"title": "New"}, owner_id=ALICE)

    assert updated.title == "New"
    assert updated.content == "body"
    assert updated.priority == 1
    assert updated.updated_at >= entity.updated_at


def test_update_entity_clears_content(entities: EntityStore) -> None:
    """Test an explicit None clears an optional field."""
    entity = entities.create("Task", owner_id=ALICE, content="body")
    assert entities.update(entity.id, {"content": None}, owner_id=ALICE).content is None


def test_update_entity_appends_capabilities(entities: EntityStore) -> None:
    """Test capabilities supplied on update are added, not substituted."""
    entity = entities.create("Task", owner_id=ALICE, capabilities=[{"type": "task"}])

    reminder = {"type": "reminder", "data": {"at": "9am"}}
    updated = entities.update(entity.id, {}, owner_id=ALICE, capabilities=[reminder])

    assert [c.type for c in updated.capabilities] == ["task", "reminder"]


@pytest.mark.parametrize(
    "changes",
    [{"owner_id": BOB}, {"color": "red"}, {"title": ""}, {"priority": "1"}],
)
def test_update_entity_rejects_bad_changes(entities: EntityStore, changes: dict) -> None:
    """Test invalid updates fail and leave the entity unchanged."""
    entity = entities.create("Task", owner_id=ALICE, priority=3)

    with pytest.raises(ValidationError):
        entities.update(entity.id, changes, owner_id=ALICE)

    unchanged = entities.get(entity.id, owner_id=ALICE)
    assert (unchanged.title, unchanged.owner_id, unchanged.priority) == ("Task", ALICE, 3)


def test_update_entity_of_another_owner(entities: EntityStore) -> None:
    """Test another user cannot update the entity."""
    entity = entities.create("Task", owner_id=ALICE)
    with pytest.raises(ForbiddenError):
        entities.update(entity.id, {"title": "Hijacked"}, owner_id=BOB)
    assert entities.get(entity.id, owner_id=ALICE).title == "Task"


def test_delete_entity_cascades(entities: EntityStore, count_rows) -> None:
    """Test deleting removes the entity's capabilities and links on both sides."""
    upstream = entities.create("Upstream", owner_id=ALICE)
    entity = entities.create(
        "Doomed",
        owner_id=ALICE,
        capabilities=[{"type": "task"}, {"type": "note"}],
        links=[{"target_id": upstream.id, "type": "depends_on"}],
    )
    entities.create("Downstream", owner_id=BOB, links=[{"target_id": entity.id, "type": "cites"}])
    survivor = entities.create("Survivor", owner_id=ALICE, capabilities=[{"type": "task"}])

    deletion = entities.delete(entity.id, owner_id=ALICE)

    assert deletion.id == entity.id
    assert deletion.kind == "entity"
    assert count_rows("capabilities", "entity_id = ?", (entity.id,)) == 0
    assert count_rows("links", "source_id = ? OR target_id = ?", (entity.id, entity.id)) == 0
    assert count_rows("links") == 0
    assert count_rows("capabilities", "entity_id = ?", (survivor.id,)) == 1


def test_delete_entity_twice(entities: EntityStore) -> None:
    """Test the second delete reports the entity as missing."""
    entity = entities.create("Task", owner_id=ALICE)
    entities.delete(entity.id, owner_id=ALICE)
    with pytest.raises(NotFoundError):
        entities.delete(entity.id, owner_id=ALICE)


def test_delete_entity_of_another_owner(entities: EntityStore, count_rows) -> None:
    """Test another user cannot delete the entity."""
    entity = entities.create("Task", owner_id=ALICE)
    with pytest.raises(ForbiddenError):
        entities.delete(entity.id, owner_id=BOB)
    assert count_rows("entities") == 1
