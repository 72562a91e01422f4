"""子树工作区（纯内存）

把一棵子树按 ID 索引加载到内存，基于 parent_id 邻接关系计算子树高度、
判断包含关系，并自顶向下重算整棵子树的路径。不访问数据库，可以独立测试。

使用示例:
    arena = SubtreeArena.from_rows(node.id, subtree_nodes)
    if new_parent.id in arena:
        raise CycleDetected(...)
    if new_parent.depth + 1 + arena.height() > max_depth:
        raise DepthExceeded(...)
    for node_id, path in arena.relocate(new_parent.path + [node.id]).items():
        ...
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class ArenaNode:
    id: int
    parent_id: Optional[int]


class SubtreeArena:
    """以 root_id 为根的子树"""

    def __init__(self, root_id: int, nodes: Iterable[ArenaNode]):
        self.root_id = root_id
        self._nodes: Dict[int, ArenaNode] = {}
        self._children: Dict[int, List[int]] = {}

        for node in nodes:
            self._nodes[node.id] = node
        if root_id not in self._nodes:
            self._nodes[root_id] = ArenaNode(id=root_id, parent_id=None)

        for node in self._nodes.values():
            if node.id == root_id:
                continue
            self._children.setdefault(node.parent_id, []).append(node.id)
        for child_ids in self._children.values():
            child_ids.sort()

    @classmethod
    def from_rows(cls, root_id: int, rows: Iterable[Any]) -> "SubtreeArena":
        """从任意带 id / parent_id 属性的对象构建（通常是 ORM 实例）"""
        return cls(root_id, (ArenaNode(id=r.id, parent_id=r.parent_id) for r in rows))

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def ids(self) -> List[int]:
        return list(self._nodes.keys())

    def children_of(self, node_id: int) -> List[int]:
        return list(self._children.get(node_id, []))

    def _walk(self):
        """广度优先遍历，产出 (node_id, 相对根的深度)"""
        queue = deque([(self.root_id, 0)])
        seen = {self.root_id}
        while queue:
            node_id, rel_depth = queue.popleft()
            yield node_id, rel_depth
            for child_id in self._children.get(node_id, []):
                if child_id not in seen:
                    seen.add(child_id)
                    queue.append((child_id, rel_depth + 1))

    def height(self) -> int:
        """子树高度：最深子孙相对根的层数，叶子为 0"""
        return max(rel_depth for _, rel_depth in self._walk())

    def unreachable(self) -> List[int]:
        """加载进来但从根出发走不到的节点（路径数据不一致时出现）"""
        reached = {node_id for node_id, _ in self._walk()}
        return sorted(set(self._nodes) - reached)

    def relocate(self, root_path: List[int]) -> Dict[int, List[int]]:
        """以新的根路径自顶向下重算子树内每个节点的路径

        Args:
            root_path: 根节点的新路径（含根自身 ID）

        Returns:
            {node_id: new_path}，按遍历顺序（父在子前）
        """
        paths: Dict[int, List[int]] = {self.root_id: list(root_path)}
        for node_id, _ in self._walk():
            for child_id in self._children.get(node_id, []):
                paths[child_id] = paths[node_id] + [child_id]
        return paths
