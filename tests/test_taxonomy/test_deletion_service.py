"""测试删除协调服务

删除后检查两条全局约束：没有条目指向已删除节点，没有未删除节点的父节点已删除。
"""

import pytest

from ytree.exceptions import ValidationException
from ytree.orm import clear_user, set_user
from ytree.taxonomy import (
    CategoryNode,
    ContentItem,
    DeletionBlocked,
    DeletionPolicy,
    DuplicateSibling,
    NodeNotFound,
    TemplateNodeInUse,
    TemplateOwner,
)


def assert_no_orphans():
    live_ids = {n.id for n in CategoryNode.query.all()}
    for node in CategoryNode.query.all():
        assert node.parent_id is None or node.parent_id in live_ids
    for item in ContentItem.query.all():
        assert item.node_id is None or item.node_id in live_ids


@pytest.fixture
def prayer_tree(node_service, content_service, owner):
    """
    prayer
    └── rooms          (2 个条目)
        ├── upper      (1 个条目)
        │   └── dawn
        └── healing
    """
    prayer = node_service.create_node(owner, "prayer", "Prayer")
    rooms = node_service.create_node(owner, "rooms", "Prayer Rooms", parent_id=prayer.id)
    upper = node_service.create_node(owner, "upper", "Upper Room", parent_id=rooms.id)
    dawn = node_service.create_node(owner, "dawn", "Dawn", parent_id=upper.id)
    healing = node_service.create_node(owner, "healing", "Healing Room", parent_id=rooms.id)
    items = [
        content_service.attach_item(rooms.id, "prompt", "rooms prompt"),
        content_service.attach_item(rooms.id, "instruction", "rooms instruction"),
        content_service.attach_item(upper.id, "prompt", "upper prompt"),
    ]
    return {
        "prayer": prayer,
        "rooms": rooms,
        "upper": upper,
        "dawn": dawn,
        "healing": healing,
        "items": items,
    }


class TestReassign:

    def test_children_and_items_move_up(self, deletion_service, prayer_tree):
        t = prayer_tree
        result = deletion_service.delete_node(t["rooms"].id, DeletionPolicy.REASSIGN)

        assert result.success
        assert result.policy == DeletionPolicy.REASSIGN
        assert result.affected_children == 2
        assert result.affected_content_items == 2
        assert result.deleted_node_ids == [t["rooms"].id]

        upper = CategoryNode.get(t["upper"].id)
        dawn = CategoryNode.get(t["dawn"].id)
        assert upper.parent_id == t["prayer"].id
        assert upper.path == [t["prayer"].id, upper.id]
        assert upper.depth == 1
        assert dawn.path == [t["prayer"].id, upper.id, dawn.id]
        assert dawn.depth == 2

        moved = ContentItem.query.filter(ContentItem.node_id == t["prayer"].id).all()
        assert len(moved) == 2
        assert ContentItem.get(t["items"][2].id).node_id == upper.id
        assert_no_orphans()

    def test_root_items_become_uncategorized(self, node_service, content_service, deletion_service, owner):
        root = node_service.create_node(owner, "root", "Root")
        child = node_service.create_node(owner, "child", "Child", parent_id=root.id)
        item = content_service.attach_item(root.id, "metadata", "orphan")

        deletion_service.delete_node(root.id, "reassign")

        assert ContentItem.get(item.id).node_id is None
        promoted = CategoryNode.get(child.id)
        assert promoted.parent_id is None
        assert promoted.path == [child.id]
        assert content_service.list_uncategorized(owner)[0].id == item.id

    def test_promoted_slug_collision_rolls_back(self, node_service, deletion_service, owner):
        root = node_service.create_node(owner, "root", "Root")
        mid = node_service.create_node(owner, "mid", "Mid", parent_id=root.id)
        node_service.create_node(owner, "dup", "Dup", parent_id=root.id)
        node_service.create_node(owner, "dup", "Dup", parent_id=mid.id)

        with pytest.raises(DuplicateSibling):
            deletion_service.delete_node(mid.id, "reassign")
        assert CategoryNode.get(mid.id) is not None

    def test_promoted_child_may_take_deleted_slug(self, node_service, deletion_service, owner):
        """被删节点的 slug 先释放，同名子节点可以提升"""
        root = node_service.create_node(owner, "root", "Root")
        mid = node_service.create_node(owner, "topic", "Topic", parent_id=root.id)
        inner = node_service.create_node(owner, "topic", "Topic", parent_id=mid.id)

        deletion_service.delete_node(mid.id, "reassign")
        assert CategoryNode.get(inner.id).parent_id == root.id


class TestCascade:

    def test_subtree_deleted_items_uncategorized(self, deletion_service, prayer_tree, owner):
        t = prayer_tree
        result = deletion_service.delete_node(t["rooms"].id, DeletionPolicy.CASCADE)

        assert result.affected_children == 3
        assert result.affected_content_items == 3
        assert sorted(result.deleted_node_ids) == sorted(
            [t["rooms"].id, t["upper"].id, t["dawn"].id, t["healing"].id]
        )
        assert [n.id for n in CategoryNode.query.all()] == [t["prayer"].id]
        assert all(item.node_id is None for item in ContentItem.query.all())
        assert ContentItem.query.count() == 3
        assert_no_orphans()

    def test_items_outside_subtree_untouched(self, deletion_service, content_service, prayer_tree):
        t = prayer_tree
        outside = content_service.attach_item(t["prayer"].id, "activation", "prayer activation")

        deletion_service.delete_node(t["rooms"].id, "cascade")

        item = ContentItem.get(outside.id)
        assert item.node_id == t["prayer"].id
        assert item.version == 1
        categorized = ContentItem.query.filter(ContentItem.node_id.isnot(None)).all()
        assert [i.id for i in categorized] == [outside.id]
        assert_no_orphans()

    def test_soft_deleted_rows_kept(self, deletion_service, prayer_tree):
        deletion_service.delete_node(prayer_tree["prayer"].id, "cascade")
        assert CategoryNode.query.count() == 0
        assert CategoryNode.query.execution_options(include_deleted=True).count() == 5


class TestBlock:

    def test_non_empty_node_blocked(self, deletion_service, query_service, prayer_tree, owner):
        """被拒绝的删除不改动树和条目"""
        tree_before = [row.model_dump() for row in query_service.get_tree(owner)]
        items_before = {item.id: item.node_id for item in ContentItem.query.all()}

        with pytest.raises(DeletionBlocked) as exc_info:
            deletion_service.delete_node(prayer_tree["rooms"].id, DeletionPolicy.BLOCK)
        assert exc_info.value.child_count == 2
        assert exc_info.value.content_count == 2

        assert [row.model_dump() for row in query_service.get_tree(owner)] == tree_before
        assert {item.id: item.node_id for item in ContentItem.query.all()} == items_before
        assert CategoryNode.query.execution_options(include_deleted=True).count() == 5

    def test_items_alone_block(self, deletion_service, prayer_tree):
        """dawn 为空可以删除，upper 有一个条目和一个子节点"""
        deletion_service.delete_node(prayer_tree["dawn"].id, "block")
        with pytest.raises(DeletionBlocked) as exc_info:
            deletion_service.delete_node(prayer_tree["upper"].id, "block")
        assert exc_info.value.child_count == 0
        assert exc_info.value.content_count == 1

    def test_default_policy_is_block(self, deletion_service, prayer_tree):
        with pytest.raises(DeletionBlocked):
            deletion_service.delete_node(prayer_tree["rooms"].id)

    def test_safe_delete_returns_result(self, deletion_service, prayer_tree):
        result = deletion_service.safe_delete_node(prayer_tree["rooms"].id, "block")
        assert result.success is False
        assert result.affected_children == 2
        assert result.affected_content_items == 2
        assert "reassign" in result.message

    def test_safe_delete_success(self, deletion_service, prayer_tree):
        result = deletion_service.safe_delete_node(prayer_tree["healing"].id, "block")
        assert result.success is True
        assert result.deleted_node_ids == [prayer_tree["healing"].id]


class TestDeleteEdgeCases:

    def test_already_deleted(self, deletion_service, prayer_tree):
        deletion_service.delete_node(prayer_tree["healing"].id, "block")
        with pytest.raises(NodeNotFound):
            deletion_service.delete_node(prayer_tree["healing"].id, "block")

    def test_unknown_policy(self, deletion_service, prayer_tree):
        with pytest.raises(ValidationException) as exc_info:
            deletion_service.delete_node(prayer_tree["healing"].id, "archive")
        assert exc_info.value.extra["field"] == "mode"
        assert CategoryNode.get(prayer_tree["healing"].id) is not None

    def test_actor_recorded(self, deletion_service, prayer_tree):
        deletion_service.delete_node(prayer_tree["healing"].id, "block", actor=5)
        node = CategoryNode.get_with_deleted(prayer_tree["healing"].id)
        assert node.deleted_by == 5

    def test_actor_from_session_user(self, db, deletion_service, prayer_tree):
        set_user(db, 8)
        try:
            deletion_service.delete_node(prayer_tree["dawn"].id, "block")
        finally:
            clear_user(db)
        assert CategoryNode.get_with_deleted(prayer_tree["dawn"].id).deleted_by == 8


class TestTemplateNodeDeletion:

    def test_override_node_in_use(self, template_service, deletion_service, persona_tree, collection):
        template_id = persona_tree["root"].owner_id
        template_service.bind_collection_to_template(
            collection.id, template_id, override_node_id=persona_tree["stage_01"].id
        )
        with pytest.raises(TemplateNodeInUse):
            deletion_service.delete_node(persona_tree["stage_01"].id, "block")
        with pytest.raises(TemplateNodeInUse):
            deletion_service.delete_node(persona_tree["root"].id, "cascade")

    def test_delete_bumps_template_version(self, template_service, deletion_service, persona_tree):
        template_id = persona_tree["root"].owner_id
        before = template_service.get_template(template_id).version
        deletion_service.delete_node(persona_tree["stage_02"].id, "block")
        template = template_service.get_template(template_id)
        assert template.version == before + 1
        structure = template_service.get_version(template_id, template.version).structure
        assert persona_tree["stage_02"].id not in {n["id"] for n in structure}
        assert TemplateOwner(template_id) == persona_tree["root"].owner
