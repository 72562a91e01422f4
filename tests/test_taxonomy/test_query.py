"""测试树查询服务"""

import pytest

from ytree.taxonomy import (
    CategoryNode,
    CollectionOwner,
    ItemType,
    NodeNotFound,
    TemplateOwner,
    TreeIntegrityError,
)


@pytest.fixture
def prayer_tree(node_service, content_service, owner):
    """
    prayer
    ├── rooms
    │   └── upper
    └── requests
    care
    """
    prayer = node_service.create_node(owner, "prayer", "Prayer")
    rooms = node_service.create_node(owner, "rooms", "Prayer Rooms", parent_id=prayer.id)
    upper = node_service.create_node(owner, "upper", "Upper Room", parent_id=rooms.id)
    requests = node_service.create_node(owner, "requests", "Prayer Requests", parent_id=prayer.id)
    care = node_service.create_node(owner, "care", "Care & Coaching")
    content_service.attach_item(rooms.id, "prompt", "enter the room")
    content_service.attach_item(rooms.id, "instruction", "be quiet")
    return {"prayer": prayer, "rooms": rooms, "upper": upper, "requests": requests, "care": care}


class TestGetTree:

    def test_rows_in_path_order(self, query_service, prayer_tree, owner):
        rows = query_service.get_tree(owner)
        t = prayer_tree
        assert [r.id for r in rows] == [
            t["prayer"].id, t["rooms"].id, t["upper"].id, t["requests"].id, t["care"].id
        ]

        by_slug = {r.slug: r for r in rows}
        assert by_slug["prayer"].child_count == 2
        assert by_slug["rooms"].item_count == 2
        assert by_slug["upper"].path == [t["prayer"].id, t["rooms"].id, t["upper"].id]
        assert by_slug["upper"].depth == 2
        assert by_slug["care"].parent_id is None

    def test_subtree(self, query_service, prayer_tree, owner):
        rows = query_service.get_tree(owner, root_id=prayer_tree["rooms"].id)
        assert [r.slug for r in rows] == ["rooms", "upper"]

    def test_root_from_other_owner(self, query_service, prayer_tree, collection_pair):
        with pytest.raises(NodeNotFound):
            query_service.get_tree(CollectionOwner(collection_pair[0].id), root_id=prayer_tree["rooms"].id)

    def test_deleted_nodes_hidden(self, query_service, deletion_service, prayer_tree, owner):
        deletion_service.delete_node(prayer_tree["care"].id, "block")
        assert "care" not in [r.slug for r in query_service.get_tree(owner)]

    def test_empty(self, query_service, owner):
        assert query_service.get_tree(owner) == []

    def test_nested(self, query_service, prayer_tree, owner):
        tree = query_service.get_nested_tree(owner)
        assert [n["slug"] for n in tree] == ["prayer", "care"]
        assert [n["slug"] for n in tree[0]["children"]] == ["rooms", "requests"]
        assert tree[0]["children"][0]["children"][0]["slug"] == "upper"


class TestPaths:

    def test_ancestor_path(self, query_service, prayer_tree):
        names = query_service.get_ancestor_path(prayer_tree["upper"].id)
        assert names == ["Prayer", "Prayer Rooms", "Upper Room"]

    def test_root_ancestor_path(self, query_service, prayer_tree):
        assert query_service.get_ancestor_path(prayer_tree["care"].id) == ["Care & Coaching"]

    def test_path_string(self, query_service, prayer_tree):
        assert query_service.get_path_string(prayer_tree["upper"].id, " / ") == "Prayer / Prayer Rooms / Upper Room"

    def test_missing_node(self, query_service, db):
        with pytest.raises(NodeNotFound):
            query_service.get_ancestor_path(5)


class TestDescendants:

    def test_excludes_self_by_default(self, query_service, prayer_tree):
        rows = query_service.get_descendants(prayer_tree["prayer"].id)
        assert [r.name for r in rows] == ["Prayer Rooms", "Upper Room", "Prayer Requests"]
        assert len(rows[0].items) == 2
        assert rows[0].items[0].item_type == ItemType.PROMPT

    def test_include_self(self, query_service, prayer_tree):
        rows = query_service.get_descendants(prayer_tree["rooms"].id, include_self=True)
        assert [r.name for r in rows] == ["Prayer Rooms", "Upper Room"]

    def test_leaf(self, query_service, prayer_tree):
        assert query_service.get_descendants(prayer_tree["upper"].id) == []

    def test_collection_isolation_on_shared_template_node(
        self, query_service, template_service, content_service, persona_tree, collection_pair
    ):
        """CollectionA 与 CollectionB 绑定同一模板，各自在 Stage 01 上挂条目"""
        a, b = collection_pair
        template_id = persona_tree["root"].owner_id
        template_service.bind_collection_to_template(a.id, template_id)
        template_service.bind_collection_to_template(b.id, template_id)

        stage_01 = persona_tree["stage_01"]
        item_a = content_service.attach_item(stage_01.id, "prompt", "A's prompt", collection_id=a.id)
        item_b = content_service.attach_item(stage_01.id, "prompt", "B's prompt", collection_id=b.id)

        rows = query_service.get_descendants(persona_tree["root"].id, collection_id=a.id)
        stage_row = next(r for r in rows if r.id == stage_01.id)
        assert [i.id for i in stage_row.items] == [item_a.id]
        all_ids = {i.id for r in rows for i in r.items}
        assert item_b.id not in all_ids

        rows_b = query_service.get_descendants(persona_tree["root"].id, collection_id=b.id)
        stage_row_b = next(r for r in rows_b if r.id == stage_01.id)
        assert [i.id for i in stage_row_b.items] == [item_b.id]

    def test_generic_items_visible_to_every_collection(
        self, query_service, template_service, content_service, persona_tree, collection_pair
    ):
        a, b = collection_pair
        template_id = persona_tree["root"].owner_id
        template_service.bind_collection_to_template(a.id, template_id)
        generic = content_service.attach_item(persona_tree["stage_02"].id, "instruction", "shared")

        rows = query_service.get_descendants(persona_tree["root"].id, collection_id=a.id)
        stage_row = next(r for r in rows if r.id == persona_tree["stage_02"].id)
        assert [i.id for i in stage_row.items] == [generic.id]


class TestFindNearestItem:

    def test_walks_up(self, query_service, prayer_tree):
        item = query_service.find_nearest_item(prayer_tree["upper"].id, item_type="instruction")
        assert item.content == "be quiet"

    def test_none_found(self, query_service, prayer_tree):
        assert query_service.find_nearest_item(prayer_tree["care"].id) is None

    def test_priority(self, query_service, content_service, prayer_tree):
        content_service.attach_item(prayer_tree["upper"].id, "prompt", "low", priority=1)
        content_service.attach_item(prayer_tree["upper"].id, "prompt", "high", priority=9)
        assert query_service.find_nearest_item(prayer_tree["upper"].id, item_type="prompt").content == "high"

    def test_collection_item_preferred(
        self, query_service, template_service, content_service, persona_tree, collection_pair
    ):
        a, b = collection_pair
        template_id = persona_tree["root"].owner_id
        template_service.bind_collection_to_template(a.id, template_id)
        template_service.bind_collection_to_template(b.id, template_id)
        stage = persona_tree["stage_01"].id

        content_service.attach_item(stage, "prompt", "generic", priority=10)
        content_service.attach_item(stage, "prompt", "only A", collection_id=a.id)

        assert query_service.find_nearest_item(stage, a.id, ItemType.PROMPT).content == "only A"
        assert query_service.find_nearest_item(stage, b.id, ItemType.PROMPT).content == "generic"


class TestIntegrity:
    """查询层只报告不一致，不修复"""

    def test_depth_mismatch(self, db, query_service, prayer_tree, owner):
        node = CategoryNode.get(prayer_tree["upper"].id)
        node.depth = 7
        db.commit()

        with pytest.raises(TreeIntegrityError) as exc_info:
            query_service.get_tree(owner)
        assert exc_info.value.node_id == node.id
        assert CategoryNode.get(node.id).depth == 7

    def test_path_disagrees_with_parent(self, db, query_service, prayer_tree, owner):
        node = CategoryNode.get(prayer_tree["upper"].id)
        node.set_path([prayer_tree["care"].id, prayer_tree["rooms"].id, node.id])
        db.commit()

        with pytest.raises(TreeIntegrityError):
            query_service.get_tree(owner)

    def test_missing_ancestor(self, db, query_service, prayer_tree):
        """绕过删除服务直接删除中间节点"""
        rooms = CategoryNode.get(prayer_tree["rooms"].id)
        rooms.soft_delete()
        db.commit()

        with pytest.raises(TreeIntegrityError):
            query_service.get_ancestor_path(prayer_tree["upper"].id)

    def test_template_tree_is_consistent(self, query_service, persona_tree):
        rows = query_service.get_tree(TemplateOwner(persona_tree["root"].owner_id))
        assert [r.slug for r in rows] == ["persona", "stage-01", "stage-02"]
