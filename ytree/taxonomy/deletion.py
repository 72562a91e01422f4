"""
分类树模块 - 删除策略

三种删除策略都是纯函数：输入被删节点、子节点、子树和条目的快照，
输出 DeletionPlan（节点移动、条目移动、待删除节点），不访问数据库。
DeletionService 负责加载快照、应用计划并在同一事务中提交。

使用示例:
    plan = plan_deletion(DeletionPolicy.REASSIGN, snapshot)
    for move in plan.node_moves:
        ...
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from ytree.orm.tree import SubtreeArena

from .enums import DeletionPolicy
from .exceptions import DeletionBlocked, DuplicateSibling


@dataclass(frozen=True)
class NodeSnapshot:
    id: int
    parent_id: Optional[int]
    slug: str
    path: List[int]

    @classmethod
    def of(cls, node) -> "NodeSnapshot":
        return cls(id=node.id, parent_id=node.parent_id, slug=node.slug, path=list(node.path or []))


@dataclass
class DeletionSnapshot:
    """删除前读取到的状态

    Attributes:
        node: 被删节点
        children: 未删除的直接子节点
        subtree: 以被删节点为根的子树
        node_item_ids: 挂在被删节点上的未删除条目
        subtree_item_ids: 挂在子树任意节点上的未删除条目（含 node_item_ids）
        sibling_slugs: 被删节点父级下其他未删除节点的 slug（不含被删节点）
    """
    node: NodeSnapshot
    children: List[NodeSnapshot]
    subtree: SubtreeArena
    node_item_ids: List[int] = field(default_factory=list)
    subtree_item_ids: List[int] = field(default_factory=list)
    sibling_slugs: Set[str] = field(default_factory=set)

    @property
    def child_count(self) -> int:
        return len(self.children)

    @property
    def content_count(self) -> int:
        return len(self.node_item_ids)


@dataclass(frozen=True)
class NodeMove:
    node_id: int
    parent_id: Optional[int]
    path: List[int]


@dataclass(frozen=True)
class ItemMove:
    item_id: int
    node_id: Optional[int]


@dataclass
class DeletionPlan:
    policy: DeletionPolicy
    node_moves: List[NodeMove] = field(default_factory=list)
    item_moves: List[ItemMove] = field(default_factory=list)
    deletes: List[int] = field(default_factory=list)
    affected_children: int = 0
    affected_content_items: int = 0


# ==================== 策略 ====================

def plan_block(snapshot: DeletionSnapshot) -> DeletionPlan:
    """有子节点或条目时拒绝，否则只删除节点自身"""
    if snapshot.child_count or snapshot.content_count:
        raise DeletionBlocked(snapshot.node.id, snapshot.child_count, snapshot.content_count)
    return DeletionPlan(policy=DeletionPolicy.BLOCK, deletes=[snapshot.node.id])


def plan_reassign(snapshot: DeletionSnapshot) -> DeletionPlan:
    """子节点提升到被删节点的父级，条目移到父节点（根节点则变为未分类）

    子节点的整棵子树路径都要去掉被删节点这一段。
    深度只会减少，不需要检查上限；提升后的 slug 冲突在任何变更之前报错。
    """
    node = snapshot.node
    for child in snapshot.children:
        if child.slug in snapshot.sibling_slugs:
            raise DuplicateSibling(child.slug, node.parent_id)

    cut = len(node.path) - 1
    child_ids = {child.id for child in snapshot.children}

    node_moves = []
    for node_id, path in snapshot.subtree.relocate(node.path).items():
        if node_id == node.id:
            continue
        new_path = path[:cut] + path[cut + 1:]
        parent_id = node.parent_id if node_id in child_ids else new_path[-2]
        node_moves.append(NodeMove(node_id=node_id, parent_id=parent_id, path=new_path))

    item_moves = [ItemMove(item_id=item_id, node_id=node.parent_id) for item_id in snapshot.node_item_ids]

    return DeletionPlan(
        policy=DeletionPolicy.REASSIGN,
        node_moves=node_moves,
        item_moves=item_moves,
        deletes=[node.id],
        affected_children=snapshot.child_count,
        affected_content_items=len(item_moves),
    )


def plan_cascade(snapshot: DeletionSnapshot) -> DeletionPlan:
    """整棵子树软删除，子树内所有条目变为未分类"""
    deletes = list(snapshot.subtree.relocate(snapshot.node.path).keys())
    item_moves = [ItemMove(item_id=item_id, node_id=None) for item_id in snapshot.subtree_item_ids]
    return DeletionPlan(
        policy=DeletionPolicy.CASCADE,
        item_moves=item_moves,
        deletes=deletes,
        affected_children=len(deletes) - 1,
        affected_content_items=len(item_moves),
    )


_POLICIES: Dict[DeletionPolicy, Callable[[DeletionSnapshot], DeletionPlan]] = {
    DeletionPolicy.REASSIGN: plan_reassign,
    DeletionPolicy.CASCADE: plan_cascade,
    DeletionPolicy.BLOCK: plan_block,
}


def plan_deletion(policy: DeletionPolicy, snapshot: DeletionSnapshot) -> DeletionPlan:
    return _POLICIES[DeletionPolicy(policy)](snapshot)


__all__ = [
    "NodeSnapshot",
    "DeletionSnapshot",
    "NodeMove",
    "ItemMove",
    "DeletionPlan",
    "plan_block",
    "plan_reassign",
    "plan_cascade",
    "plan_deletion",
]
