"""测试子树工作区与树工具函数

SubtreeArena 是纯内存结构，不需要数据库。
"""

import pytest

from ytree.orm.tree import ArenaNode, SubtreeArena, build_tree_list, encode_path_key


def make_arena():
    """
    1
    ├── 2
    │   └── 4
    │       └── 5
    └── 3
    """
    return SubtreeArena(1, [
        ArenaNode(1, None),
        ArenaNode(2, 1),
        ArenaNode(3, 1),
        ArenaNode(4, 2),
        ArenaNode(5, 4),
    ])


class TestSubtreeArena:
    """测试 SubtreeArena"""

    def test_contains_and_len(self):
        arena = make_arena()
        assert 4 in arena
        assert 9 not in arena
        assert len(arena) == 5

    def test_height(self):
        """高度为最深子孙相对根的层数"""
        assert make_arena().height() == 3

    def test_single_node_height_is_zero(self):
        assert SubtreeArena(7, []).height() == 0

    def test_children_sorted(self):
        arena = SubtreeArena(1, [ArenaNode(3, 1), ArenaNode(2, 1), ArenaNode(1, None)])
        assert arena.children_of(1) == [2, 3]

    def test_relocate_rewrites_every_path(self):
        """以新根路径自顶向下重算"""
        paths = make_arena().relocate([10, 1])
        assert paths == {
            1: [10, 1],
            2: [10, 1, 2],
            3: [10, 1, 3],
            4: [10, 1, 2, 4],
            5: [10, 1, 2, 4, 5],
        }

    def test_relocate_parents_before_children(self):
        order = list(make_arena().relocate([1]).keys())
        assert order.index(2) < order.index(4) < order.index(5)

    def test_unreachable_nodes_reported(self):
        """parent_id 指向子树外的节点无法从根到达"""
        arena = SubtreeArena(1, [ArenaNode(1, None), ArenaNode(2, 1), ArenaNode(6, 99)])
        assert arena.unreachable() == [6]

    def test_cycle_does_not_loop_forever(self):
        arena = SubtreeArena(1, [ArenaNode(1, None), ArenaNode(2, 3), ArenaNode(3, 2)])
        assert arena.height() == 0
        assert arena.unreachable() == [2, 3]

    def test_from_rows_uses_attributes(self):
        class Row:
            def __init__(self, id, parent_id):
                self.id = id
                self.parent_id = parent_id

        arena = SubtreeArena.from_rows(1, [Row(1, None), Row(2, 1)])
        assert arena.ids() == [1, 2]
        assert arena.height() == 1


class TestPathKey:
    """测试 path_key 编码"""

    def test_fixed_width(self):
        assert encode_path_key([1, 25]) == "0000000001/0000000025/"

    def test_prefix_matches_subtree(self):
        parent = encode_path_key([1, 2])
        assert encode_path_key([1, 2, 30]).startswith(parent)
        assert not encode_path_key([1, 20]).startswith(parent)

    @pytest.mark.parametrize("left,right", [
        ([1, 2], [1, 10]),
        ([1], [1, 2]),
        ([2, 5], [10]),
    ])
    def test_lexicographic_order_follows_id_sequence(self, left, right):
        assert encode_path_key(left) < encode_path_key(right)


class TestBuildTreeList:
    """测试扁平列表转嵌套树"""

    def test_nested(self):
        flat = [
            {"id": 1, "parent_id": None, "name": "根"},
            {"id": 2, "parent_id": 1, "name": "子1"},
            {"id": 3, "parent_id": 2, "name": "孙"},
        ]
        tree = build_tree_list(flat)
        assert len(tree) == 1
        assert tree[0]["children"][0]["children"][0]["id"] == 3

    def test_missing_parent_becomes_root(self):
        tree = build_tree_list([{"id": 5, "parent_id": 4}])
        assert [n["id"] for n in tree] == [5]

    def test_sort_key(self):
        flat = [
            {"id": 1, "parent_id": None, "order": 2},
            {"id": 2, "parent_id": None, "order": 1},
        ]
        tree = build_tree_list(flat, sort_key=lambda n: n["order"])
        assert [n["id"] for n in tree] == [2, 1]

    def test_empty(self):
        assert build_tree_list([]) == []
