"""测试模板、版本快照与集合绑定"""

import pytest

from ytree.exceptions import ErrorCode, ResourceConflictException, ResourceNotFoundException
from ytree.taxonomy import (
    BindingNotFound,
    NodeNotFound,
    OwnerNotFound,
    TemplateAlreadyBound,
    TemplateNotFound,
    TemplateOwner,
)
from ytree.utils import compute_checksum


class TestTemplate:

    def test_create_writes_first_version(self, template_service, persona_template):
        assert persona_template.version == 1
        snapshot = template_service.get_version(persona_template.id, 1)
        assert snapshot.structure == []
        assert snapshot.checksum == compute_checksum([])

    def test_duplicate_slug(self, template_service, persona_template):
        with pytest.raises(ResourceConflictException):
            template_service.create_template("persona-stage", "Again")

    def test_get_by_slug(self, template_service, persona_template):
        assert template_service.get_template_by_slug("persona-stage").id == persona_template.id
        with pytest.raises(TemplateNotFound):
            template_service.get_template_by_slug("missing")

    def test_missing_version(self, template_service, persona_template):
        with pytest.raises(ResourceNotFoundException) as exc_info:
            template_service.get_version(persona_template.id, 99)
        assert exc_info.value.code == ErrorCode.TEMPLATE_NOT_FOUND


class TestStructureVersions:

    def test_each_node_creation_bumps_version(self, template_service, persona_tree):
        template_id = persona_tree["root"].owner_id
        versions = template_service.list_versions(template_id)
        assert [v.version for v in versions] == [1, 2, 3, 4]
        assert len(versions[-1].structure) == 3
        assert versions[-1].checksum == compute_checksum(versions[-1].structure)

    def test_snapshot_ordered_by_path(self, template_service, persona_tree):
        structure = template_service.snapshot_structure(persona_tree["root"].owner_id)
        assert [row["slug"] for row in structure] == ["persona", "stage-01", "stage-02"]
        assert structure[1]["path"] == [persona_tree["root"].id, persona_tree["stage_01"].id]

    def test_reparent_and_restore_bump_version(
        self, template_service, node_service, deletion_service, persona_tree
    ):
        owner = TemplateOwner(persona_tree["root"].owner_id)
        node_service.reparent_node(persona_tree["stage_02"].id, persona_tree["stage_01"].id)
        assert template_service.get_template(owner.template_id).version == 5

        deletion_service.delete_node(persona_tree["stage_02"].id, "block")
        node_service.restore_node(persona_tree["stage_02"].id)
        assert template_service.get_template(owner.template_id).version == 7

    def test_rename_does_not_bump_version(self, template_service, node_service, persona_tree):
        node_service.update_node(persona_tree["stage_01"].id, name="Stage One")
        assert template_service.get_template(persona_tree["root"].owner_id).version == 4


class TestBinding:

    def test_bind_records_current_version(self, template_service, persona_tree, collection):
        template_id = persona_tree["root"].owner_id
        binding = template_service.bind_collection_to_template(collection.id, template_id)
        assert binding.template_version == 4
        assert binding.is_active
        assert template_service.is_bound(collection.id, template_id)

    def test_double_bind(self, template_service, persona_template, collection):
        template_service.bind_collection_to_template(collection.id, persona_template.id)
        with pytest.raises(TemplateAlreadyBound):
            template_service.bind_collection_to_template(collection.id, persona_template.id)

    def test_missing_collection(self, template_service, persona_template):
        with pytest.raises(OwnerNotFound):
            template_service.bind_collection_to_template(404, persona_template.id)

    def test_missing_template(self, template_service, collection):
        with pytest.raises(TemplateNotFound):
            template_service.bind_collection_to_template(collection.id, 404)

    def test_override_node_from_other_template(
        self, template_service, node_service, persona_template, collection
    ):
        other = template_service.create_template("other", "Other")
        foreign = node_service.create_node(TemplateOwner(other.id), "x", "X")
        with pytest.raises(NodeNotFound):
            template_service.bind_collection_to_template(
                collection.id, persona_template.id, override_node_id=foreign.id
            )

    def test_unbind_and_rebind(self, template_service, persona_template, collection):
        first = template_service.bind_collection_to_template(collection.id, persona_template.id)
        template_service.unbind(collection.id, persona_template.id, actor=3)

        assert not template_service.is_bound(collection.id, persona_template.id)
        with pytest.raises(BindingNotFound):
            template_service.get_binding(collection.id, persona_template.id)

        second = template_service.bind_collection_to_template(collection.id, persona_template.id)
        assert second.id != first.id
        assert [b.id for b in template_service.list_bindings(collection_id=collection.id)] == [second.id]

    def test_list_bindings_by_template(self, template_service, persona_template, collection_pair):
        a, b = collection_pair
        template_service.bind_collection_to_template(a.id, persona_template.id)
        template_service.bind_collection_to_template(b.id, persona_template.id)
        bindings = template_service.list_bindings(template_id=persona_template.id)
        assert [x.collection_id for x in bindings] == [a.id, b.id]


class TestBindingMigration:

    def test_binding_stays_on_its_version(self, template_service, node_service, persona_tree, collection):
        template_id = persona_tree["root"].owner_id
        binding = template_service.bind_collection_to_template(collection.id, template_id)
        node_service.create_node(
            TemplateOwner(template_id), "stage-03", "Stage 03", parent_id=persona_tree["root"].id
        )
        assert len(template_service.resolve_structure(binding)) == 3

    def test_migrate_to_latest(self, template_service, node_service, persona_tree, collection):
        template_id = persona_tree["root"].owner_id
        template_service.bind_collection_to_template(collection.id, template_id)
        stage_03 = node_service.create_node(
            TemplateOwner(template_id), "stage-03", "Stage 03", parent_id=persona_tree["root"].id
        )

        migration = template_service.migrate_binding(collection.id, template_id)
        assert migration.from_version == 4
        assert migration.to_version == 5
        assert migration.added_node_ids == [stage_03.id]
        assert migration.removed_node_ids == []
        assert migration.binding.template_version == 5

        binding = template_service.get_binding(collection.id, template_id)
        assert len(template_service.resolve_structure(binding)) == 4

    def test_override_node_missing_in_target(self, template_service, persona_tree, collection):
        template_id = persona_tree["root"].owner_id
        template_service.bind_collection_to_template(
            collection.id, template_id, override_node_id=persona_tree["stage_01"].id
        )
        with pytest.raises(ResourceConflictException) as exc_info:
            template_service.migrate_binding(collection.id, template_id, to_version=2)
        assert exc_info.value.code == ErrorCode.VERSION_CONFLICT
        assert template_service.get_binding(collection.id, template_id).template_version == 4

    def test_migrate_unbound(self, template_service, persona_template, collection):
        with pytest.raises(BindingNotFound):
            template_service.migrate_binding(collection.id, persona_template.id)
