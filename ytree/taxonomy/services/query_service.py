"""
分类树模块 - 树查询服务

只读，不加锁，也从不修复数据。读取时发现 path / depth 与结构不一致，
记录 ERROR 日志并抛出 TreeIntegrityError（对外表现为通用 500）。

结果按路径排序（节点ID序列的字典序）。

使用示例:
    service = TreeQueryService()

    rows = service.get_tree(CollectionOwner(collection.id))
    names = service.get_ancestor_path(node.id)          # ["Prayer", "Prayer Rooms", "Upper Room"]
    view = service.get_descendants(root.id, collection_id=collection_a.id)
"""

from typing import Any, Dict, Iterable, List, Optional, Type, Union

from sqlalchemy import func

from ytree.log import get_logger
from ytree.orm.tree import build_tree_list, encode_path_key

from ..enums import ItemType, parse_enum
from ..exceptions import NodeNotFound, TreeIntegrityError
from ..models import CategoryNode, ContentItem
from ..owner import Owner
from ..schemas import ContentItemResponse, DescendantRow, TreeNodeRow
from .content_service import visible_items_criteria

logger = get_logger("ytree.taxonomy.query")


class TreeQueryService:
    """树查询服务"""

    node_model: Type[CategoryNode] = CategoryNode
    item_model: Type[ContentItem] = ContentItem

    # ==================== 树 ====================

    def get_tree(self, owner: Owner, root_id: Optional[int] = None) -> List[TreeNodeRow]:
        """所有者范围内的整棵树（或以 root_id 为根的子树），按路径排序

        Raises:
            NodeNotFound: root_id 不存在、已删除或不在该所有者范围
            TreeIntegrityError: 路径数据不一致
        """
        nodes = self._load_nodes(owner, root_id)
        ids = [n.id for n in nodes]

        child_counts = self._count_by(self.node_model, self.node_model.parent_id, ids)
        item_counts = self._count_by(self.item_model, self.item_model.node_id, ids)

        return [
            TreeNodeRow(
                id=n.id,
                slug=n.slug,
                name=n.name,
                parent_id=n.parent_id,
                depth=n.depth,
                path=list(n.path),
                child_count=child_counts.get(n.id, 0),
                item_count=item_counts.get(n.id, 0),
            )
            for n in nodes
        ]

    def get_nested_tree(self, owner: Owner, root_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """嵌套结构的树，同级按 display_order、id 排序"""
        nodes = self._load_nodes(owner, root_id)
        flat = [
            {
                "id": n.id,
                "parent_id": n.parent_id,
                "slug": n.slug,
                "name": n.name,
                "depth": n.depth,
                "color": n.color,
                "icon": n.icon,
                "display_order": n.display_order,
                "is_active": n.is_active,
            }
            for n in nodes
        ]
        return build_tree_list(flat, sort_key=lambda d: (d["display_order"], d["id"]))

    # ==================== 路径 ====================

    def get_ancestor_path(self, node_id: int) -> List[str]:
        """从根到节点自身的名称列表"""
        node = self._get_node(node_id)
        self._verify([node])
        ancestors = node.get_ancestors()
        if len(ancestors) != len(node.path) - 1:
            found = {a.id for a in ancestors}
            missing = [i for i in node.path[:-1] if i not in found]
            self._integrity_fault(node.id, f"路径中的祖先节点不存在或已删除: {missing}")
        return [a.name for a in ancestors] + [node.name]

    def get_path_string(self, node_id: int, separator: str = " > ") -> str:
        return separator.join(self.get_ancestor_path(node_id))

    # ==================== 子孙与内容 ====================

    def get_descendants(
        self,
        node_id: int,
        collection_id: Optional[int] = None,
        include_self: bool = False,
    ) -> List[DescendantRow]:
        """节点的所有子孙及其条目

        Args:
            node_id: 节点ID
            collection_id: 集合视角，只返回该集合的条目和通用条目，其他集合的条目永远不出现
            include_self: 是否包含节点自身
        """
        node = self._get_node(node_id)
        nodes = node.get_descendants(include_self=include_self)
        self._verify(nodes if include_self else [node] + nodes)

        items_by_node: Dict[int, List[ContentItem]] = {}
        if nodes:
            items = self.item_model.query.filter(
                self.item_model.node_id.in_([n.id for n in nodes]),
                *visible_items_criteria(self.item_model, collection_id),
            ).order_by(self.item_model.display_order, self.item_model.id).all()
            for item in items:
                items_by_node.setdefault(item.node_id, []).append(item)

        return [
            DescendantRow(
                id=n.id,
                name=n.name,
                depth=n.depth,
                path=list(n.path),
                items=[ContentItemResponse.model_validate(i) for i in items_by_node.get(n.id, [])],
            )
            for n in nodes
        ]

    def find_nearest_item(
        self,
        node_id: int,
        collection_id: Optional[int] = None,
        item_type: Union[ItemType, str, None] = None,
    ) -> Optional[ContentItem]:
        """从节点向上逐级查找第一个匹配的启用条目

        每一级优先返回集合专属条目，其次是通用条目。
        """
        node = self._get_node(node_id)
        self._verify([node])

        query = self.item_model.query.filter(
            self.item_model.node_id.in_(node.path),
            self.item_model.is_active.is_(True),
            *visible_items_criteria(self.item_model, collection_id),
        )
        if item_type is not None:
            query = query.filter(self.item_model.item_type == parse_enum(ItemType, item_type, "item_type"))

        candidates: Dict[int, List[ContentItem]] = {}
        for item in query.order_by(self.item_model.priority.desc(), self.item_model.id).all():
            candidates.setdefault(item.node_id, []).append(item)

        for level_id in reversed(node.path):
            level_items = candidates.get(level_id)
            if not level_items:
                continue
            if collection_id is not None:
                own = [i for i in level_items if i.collection_id == collection_id]
                if own:
                    return own[0]
            return level_items[0]
        return None

    # ==================== 内部方法 ====================

    def _get_node(self, node_id: int) -> CategoryNode:
        node = self.node_model.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def _load_nodes(self, owner: Owner, root_id: Optional[int]) -> List[CategoryNode]:
        query = self.node_model.query.filter(*self.node_model.owner_criteria(owner))
        if root_id is not None:
            root = self._get_node(root_id)
            if not root.in_scope(owner):
                raise NodeNotFound(root_id)
            query = query.filter(self.node_model.path_key.like(f"{root.path_key}%"))
        nodes = query.order_by(self.node_model.path_key).all()
        self._verify(nodes)
        return nodes

    def _count_by(self, model, column, ids: List[int]) -> Dict[int, int]:
        if not ids:
            return {}
        rows = model.query.with_entities(column, func.count(model.id)).filter(
            column.in_(ids)
        ).group_by(column).all()
        return dict(rows)

    def _verify(self, nodes: Iterable[CategoryNode]) -> None:
        """检查 path / depth / path_key / parent_id 是否一致"""
        by_id = {}
        for node in nodes:
            by_id[node.id] = node
            path = node.path or []
            if not path or path[-1] != node.id:
                self._integrity_fault(node.id, f"path 未以自身结尾: {path}")
            if node.depth != len(path) - 1:
                self._integrity_fault(node.id, f"depth={node.depth} 与 path 长度 {len(path)} 不符")
            expected_parent = path[-2] if len(path) > 1 else None
            if node.parent_id != expected_parent:
                self._integrity_fault(node.id, f"parent_id={node.parent_id} 与 path {path} 不符")
            if node.path_key != encode_path_key(path):
                self._integrity_fault(node.id, "path_key 与 path 不符")

        for node in by_id.values():
            parent = by_id.get(node.parent_id)
            if parent is not None and list(parent.path) != list(node.path[:-1]):
                self._integrity_fault(node.id, f"path 与父节点 {parent.id} 的 path 不符")

    def _integrity_fault(self, node_id: int, reason: str) -> None:
        logger.error(f"树结构数据不一致: node={node_id}, {reason}")
        raise TreeIntegrityError(node_id, reason)
