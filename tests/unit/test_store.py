"""
Unit Tests for GraphStore
=========================

Tests CRUD over the persisted graph document: validation and duplicate
rejection, cascading deletes, in-place observation updates, search and
corruption handling.
"""

import json

import pytest

from studygraph.graph import (
    CorruptionError,
    DuplicateEntityError,
    DuplicateRelationError,
    Entity,
    GraphStore,
    NotFoundError,
    Relation,
    ValidationError,
)
from studygraph.graph.types import entity_names


def course(name="Physics 101", *observations):
    return {"name": name, "entityType": "course", "observations": list(observations)}


class TestLoadSave:

    def test_missing_document_is_empty(self, store):
        graph = store.load()
        assert graph.entities == [] and graph.relations == []
        assert not store.path.exists()

    def test_blank_document_is_empty(self, store):
        store.path.write_text("")
        assert len(store.load()) == 0

    def test_invalid_json_is_corruption(self, store):
        store.path.write_text("{oops")
        with pytest.raises(CorruptionError):
            store.load()

    def test_malformed_entity_is_corruption(self, store):
        store.path.write_text(json.dumps({"entities": [{"entityType": "course"}], "relations": []}))
        with pytest.raises(CorruptionError) as exc:
            store.load()
        assert "malformed" in exc.value.message

    def test_document_format(self, store):
        store.create_entities([course("Physics 101", "Code: PHY101")])
        data = json.loads(store.path.read_text())
        assert data == {
            "entities": [{"name": "Physics 101", "entityType": "course", "observations": ["Code: PHY101"]}],
            "relations": [],
        }

    def test_legacy_keys_are_dropped_on_rewrite(self, store):
        store.path.write_text(json.dumps({
            "entities": [{"name": "A", "entityType": "concept", "observations": [], "embedding": [1, 2]}],
            "relations": [],
        }))
        store.add_observations("A", ["x"])
        data = json.loads(store.path.read_text())
        assert "embedding" not in data["entities"][0]

    def test_stores_share_a_document(self, store, config):
        store.create_entities([course()])
        other = GraphStore(config.memory_file_path)
        assert other.get_entity("Physics 101", "course").name == "Physics 101"


class TestEntities:

    def test_create_returns_created(self, store):
        created = store.create_entities([course(), Entity("Vectors", "concept", [])])
        assert entity_names(created) == ["Physics 101", "Vectors"]
        assert len(store.load()) == 2

    def test_duplicate_name_rejected_and_nothing_written(self, store):
        store.create_entities([course()])
        before = store.path.read_text()
        with pytest.raises(DuplicateEntityError) as exc:
            store.create_entities([course("Calculus II"), course("Physics 101")])
        assert exc.value.message == "Entity with name Physics 101 already exists"
        assert store.path.read_text() == before

    def test_duplicate_within_batch(self, store):
        with pytest.raises(DuplicateEntityError):
            store.create_entities([course(), course()])
        assert len(store.load()) == 0

    def test_unknown_entity_type(self, store):
        with pytest.raises(ValidationError) as exc:
            store.create_entities([{"name": "Bob", "entityType": "student", "observations": []}])
        assert exc.value.message.startswith("Invalid entity type: student. Valid types are: course,")

    def test_delete_cascades_relations(self, seeded_store):
        removed = seeded_store.delete_entities(["Physics 101", "Nonexistent"])
        assert removed == 1
        graph = seeded_store.load()
        assert graph.get("Physics 101") is None
        assert not any(r.touches({"Physics 101"}) for r in graph.relations)
        assert graph.get("Problem Set 3") is not None

    def test_get_entity(self, seeded_store):
        assert seeded_store.get_entity("Midterm").entity_type == "exam"
        with pytest.raises(NotFoundError) as exc:
            seeded_store.get_entity("Midterm", "course")
        assert exc.value.message == "Course 'Midterm' not found"


class TestObservations:

    def test_add_observations(self, store):
        store.create_entities([course()])
        store.add_observations("Physics 101", ["Status: current", "Status: current"])
        assert store.get_entity("Physics 101").observations == ["Status: current", "Status: current"]

    def test_add_observations_missing_entity(self, store):
        with pytest.raises(NotFoundError):
            store.add_observations("Ghost", ["x"])

    def test_delete_observations(self, store):
        store.create_entities([course("Physics 101", "a", "b", "a")])
        store.delete_observations([
            {"entityName": "Physics 101", "observations": ["a"]},
            {"entityName": "Ghost", "observations": ["b"]},
        ])
        assert store.get_entity("Physics 101").observations == ["b"]

    def test_update_observations_in_place(self, seeded_store):
        seeded_store.update_observations("Problem Set 3", ["status"], ["status:completed"])
        assignment = seeded_store.get_entity("Problem Set 3")
        assert assignment.status == "completed"
        assert "Status: in_progress" not in assignment.observations
        assert "Points: 20" in assignment.observations
        assert seeded_store.has_relation("Problem Set 3", "Physics 101", "assigned_in")

    def test_update_observations_missing_entity(self, store):
        with pytest.raises(NotFoundError):
            store.update_observations("Ghost", ["status"], [])


class TestRelations:

    def test_create_and_has(self, store):
        store.create_entities([course(), {"name": "Spring 2025", "entityType": "term"}])
        created = store.create_relations([
            {"from": "Physics 101", "to": "Spring 2025", "relationType": "part_of"}
        ])
        assert created == [Relation("Physics 101", "Spring 2025", "part_of")]
        assert store.has_relation("Physics 101", "Spring 2025", "part_of")

    def test_missing_endpoint(self, store):
        store.create_entities([course()])
        with pytest.raises(NotFoundError) as exc:
            store.create_relations([{"from": "Physics 101", "to": "Ghost", "relationType": "part_of"}])
        assert exc.value.message == "Entity 'Ghost' not found"

    def test_unknown_relation_type(self, seeded_store):
        with pytest.raises(ValidationError) as exc:
            seeded_store.create_relations([{"from": "Vectors", "to": "Energy", "relationType": "likes"}])
        assert exc.value.message.startswith("Invalid relation type: likes")

    def test_duplicate_relation(self, seeded_store):
        with pytest.raises(DuplicateRelationError):
            seeded_store.create_relations([Relation("Physics 101", "Spring 2025", "part_of")])

    def test_duplicate_relation_within_batch(self, seeded_store):
        relation = {"from": "Vectors", "to": "Energy", "relationType": "related_to"}
        with pytest.raises(DuplicateRelationError):
            seeded_store.create_relations([relation, relation])
        assert not seeded_store.has_relation("Vectors", "Energy", "related_to")

    def test_same_endpoints_different_type(self, seeded_store):
        seeded_store.create_relations([Relation("Physics 101", "Spring 2025", "included_in")])
        assert seeded_store.has_relation("Physics 101", "Spring 2025", "included_in")

    def test_delete_relations(self, seeded_store):
        removed = seeded_store.delete_relations([
            {"from": "Physics 101", "to": "Spring 2025", "relationType": "part_of"},
            {"from": "Physics 101", "to": "Spring 2025", "relationType": "follows"},
        ])
        assert removed == 1
        assert not seeded_store.has_relation("Physics 101", "Spring 2025", "part_of")


class TestReads:

    def test_search_all_terms_must_match(self, seeded_store):
        result = seeded_store.search_nodes("physics phy101")
        assert entity_names(result.entities) == ["Physics 101"]

    def test_search_terms_may_match_different_fields(self, seeded_store):
        result = seeded_store.search_nodes("course hall")
        assert entity_names(result.entities) == ["Physics 101"]

    def test_search_is_case_insensitive(self, seeded_store):
        assert "Kinematics" in entity_names(seeded_store.search_nodes("KINEMATICS").entities)

    def test_search_relations_between_matches(self, seeded_store):
        result = seeded_store.search_nodes("newton")
        names = set(entity_names(result.entities))
        assert all(r.source in names and r.target in names for r in result.relations)

    def test_blank_search_matches_everything(self, seeded_store):
        assert len(seeded_store.search_nodes("  ")) == len(seeded_store.load())

    def test_open_nodes(self, seeded_store):
        result = seeded_store.open_nodes(["Physics 101", "Spring 2025", "Ghost"])
        assert entity_names(result.entities) == ["Spring 2025", "Physics 101"]
        assert [r.relation_type for r in result.relations] == ["part_of"]
