"""
分类树模块 - 节点服务

节点的创建、移动、更新、恢复与排序。路径和深度在同一事务中同步维护：
新节点先 flush 拿到 ID，再写入 path / depth；移动节点时锁定子树根，
把整棵子树加载到 SubtreeArena，检查环与深度后自顶向下重算路径。

同级 slug 唯一由数据库部分唯一索引保证，这里的预检查只是为了给出友好的错误信息，
flush 时的 IntegrityError 同样转换为 DuplicateSibling。

使用示例:
    service = NodeService()
    owner = CollectionOwner(collection.id)

    prayer = service.create_node(owner, "prayer", "Prayer", color="#7c3aed")
    rooms = service.create_node(owner, "prayer-rooms", "Prayer Rooms", parent_id=prayer.id)
    service.reparent_node(rooms.id, None)
"""

from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ytree.config import TreeSettings, get_tree_settings
from ytree.exceptions import Err
from ytree.log import get_logger
from ytree.orm import transaction_manager
from ytree.orm.tree import SubtreeArena

from ..enums import OwnerKind
from ..exceptions import (
    CycleDetected,
    DepthExceeded,
    DuplicateSibling,
    NodeNotFound,
    OwnerNotFound,
    ParentNotFound,
    TreeIntegrityError,
)
from ..models import CategoryNode, Collection, ContentItem, Template
from ..owner import Owner
from ..schemas import TreeStats
from .template_service import TemplateService

logger = get_logger("ytree.taxonomy.node")


class NodeService:
    """节点服务

    模型类作为类属性，业务项目可在子类中替换。

    使用示例:
        class MyNodeService(NodeService):
            node_model = MyCategoryNode
    """

    node_model: Type[CategoryNode] = CategoryNode
    item_model: Type[ContentItem] = ContentItem
    collection_model: Type[Collection] = Collection
    template_model: Type[Template] = Template

    # create / update 允许直接设置的字段
    NODE_FIELDS = {
        "description",
        "icon",
        "color",
        "display_order",
        "is_active",
        "is_expandable",
        "meta_data",
    }

    def __init__(self, settings: TreeSettings = None, template_service: TemplateService = None):
        self._settings = settings
        self.template_service = template_service or TemplateService()

    @property
    def settings(self) -> TreeSettings:
        return self._settings or get_tree_settings()

    # ==================== 节点 CRUD ====================

    def create_node(
        self,
        owner: Owner,
        slug: str,
        name: str,
        parent_id: Optional[int] = None,
        **fields: Any,
    ) -> CategoryNode:
        """创建节点

        Args:
            owner: 所有者范围（CollectionOwner / TemplateOwner）
            slug: 同级唯一标识
            name: 显示名称
            parent_id: 父节点ID，为空则创建根节点
            **fields: description / icon / color / display_order / is_active / is_expandable / meta_data

        Returns:
            创建的节点（path / depth 已写入）

        Raises:
            OwnerNotFound: 所有者不存在
            ParentNotFound: 父节点不存在、已删除或不在同一所有者范围
            DepthExceeded: 新节点深度超过上限
            DuplicateSibling: 同级已有相同 slug
        """
        self._check_fields(fields)

        with transaction_manager.transaction() as tx:
            self._ensure_owner(owner)

            parent = None
            if parent_id is not None:
                parent = self._get_parent(owner, parent_id)

            depth = 0 if parent is None else parent.depth + 1
            self._check_depth(depth)
            self._check_sibling_slug(owner, parent_id, slug)

            fields.setdefault("color", self.settings.default_color)
            node = self.node_model(
                owner_kind=owner.kind,
                owner_id=owner.owner_id,
                parent_id=parent_id,
                slug=slug,
                name=name,
                **fields,
            )
            self._flush_unique(tx, slug, parent_id, node)

            node.set_path(node.compute_path(parent))
            tx.flush()

            self._after_structure_change(owner)
            logger.info(f"创建节点: {node.slug} (id={node.id}, depth={node.depth}, owner={owner})")
            return node

    def ensure_node(
        self,
        owner: Owner,
        slug: str,
        name: str,
        parent_id: Optional[int] = None,
        **fields: Any,
    ) -> CategoryNode:
        """幂等创建：同级已有该 slug 的未删除节点时直接返回它

        并发插入冲突时在保存点内回滚自己的插入，返回先插入成功的那一行。
        """
        with transaction_manager.transaction() as tx:
            existing = self.get_node_by_slug(owner, slug, parent_id)
            if existing is not None:
                return existing
            try:
                with tx.savepoint():
                    return self.create_node(owner, slug, name, parent_id=parent_id, **fields)
            except DuplicateSibling:
                existing = self.get_node_by_slug(owner, slug, parent_id)
                if existing is None:
                    raise
                return existing

    def update_node(self, node_id: int, **fields: Any) -> CategoryNode:
        """更新节点

        支持 slug / name 以及 NODE_FIELDS 中的字段；包含 parent_id 时转交 reparent_node()。

        使用示例:
            service.update_node(node.id, name="Prayer Rooms", color="#2563eb")
            service.update_node(node.id, **NodeUpdate(...).model_dump(exclude_unset=True))
        """
        move = "parent_id" in fields
        new_parent_id = fields.pop("parent_id", None)
        self._check_fields(fields, extra={"slug", "name"})

        with transaction_manager.transaction() as tx:
            if move:
                self.reparent_node(node_id, new_parent_id)

            node = self._lock_node(node_id)
            new_slug = fields.get("slug")
            if new_slug is not None and new_slug != node.slug:
                self._check_sibling_slug(node.owner, node.parent_id, new_slug, exclude_id=node.id)

            for key, value in fields.items():
                setattr(node, key, value)
            self._flush_unique(tx, node.slug, node.parent_id)

            logger.info(f"更新节点: {node.slug} (id={node.id}, fields={sorted(fields)})")
            return node

    def reparent_node(self, node_id: int, new_parent_id: Optional[int]) -> CategoryNode:
        """移动节点（连同整棵子树）到新的父节点下

        Args:
            node_id: 要移动的节点
            new_parent_id: 新父节点ID，为空则移为根节点

        Raises:
            NodeNotFound: 节点不存在或已删除
            ParentNotFound: 新父节点不存在或不在同一所有者范围
            CycleDetected: 新父节点是节点自身或其子孙
            DepthExceeded: 移动后子树最深节点超过深度上限
            DuplicateSibling: 新父节点下已有相同 slug
        """
        with transaction_manager.transaction() as tx:
            node = self._lock_node(node_id)
            if new_parent_id == node.parent_id:
                return node

            owner = node.owner
            rows = {n.id: n for n in node.get_descendants(include_self=True)}
            rows[node.id] = node
            subtree = SubtreeArena.from_rows(node.id, rows.values())
            stray = subtree.unreachable()
            if stray:
                logger.error(f"节点 {node.id} 的子树中有 {len(stray)} 个节点与 parent_id 不一致: {stray}")
                raise TreeIntegrityError(node.id, f"子树路径与父子关系不一致: {stray}")

            new_parent = None
            if new_parent_id is not None:
                if new_parent_id in subtree:
                    raise CycleDetected(node.id, new_parent_id)
                new_parent = self._get_parent(owner, new_parent_id)

            base_depth = 0 if new_parent is None else new_parent.depth + 1
            self._check_depth(base_depth + subtree.height())
            self._check_sibling_slug(owner, new_parent_id, node.slug, exclude_id=node.id)

            old_parent_id = node.parent_id
            node.parent_id = new_parent_id
            for subtree_node_id, path in subtree.relocate(node.compute_path(new_parent)).items():
                rows[subtree_node_id].set_path(path)
            self._flush_unique(tx, node.slug, new_parent_id)

            self._after_structure_change(owner)
            logger.info(
                f"移动节点: {node.slug} (id={node.id}) {old_parent_id} -> {new_parent_id}，"
                f"子树 {len(subtree)} 个节点"
            )
            return node

    def restore_node(self, node_id: int) -> CategoryNode:
        """恢复软删除的节点

        只恢复节点自身（级联删除的子孙需要逐个恢复），路径按当前父节点重算。

        Raises:
            NodeNotFound: 节点不存在
            ParentNotFound: 父节点已删除
            DuplicateSibling: slug 已被同级其他节点占用
            DepthExceeded: 父节点被移动后恢复位置超过深度上限
        """
        with transaction_manager.transaction() as tx:
            node = self.node_model.query.execution_options(include_deleted=True).filter(
                self.node_model.id == node_id
            ).with_for_update().first()
            if node is None:
                raise NodeNotFound(node_id)
            if not node.is_deleted:
                return node

            owner = node.owner
            parent = None
            if node.parent_id is not None:
                parent = self.node_model.get(node.parent_id)
                if parent is None:
                    raise ParentNotFound(node.parent_id, f"父节点 {node.parent_id} 已删除，请先恢复父节点")

            self._check_depth(0 if parent is None else parent.depth + 1)
            self._check_sibling_slug(owner, node.parent_id, node.slug, exclude_id=node.id)

            node.undelete()
            node.set_path(node.compute_path(parent))
            self._flush_unique(tx, node.slug, node.parent_id)

            self._after_structure_change(owner)
            logger.info(f"恢复节点: {node.slug} (id={node.id})")
            return node

    def reorder_children(self, owner: Owner, parent_id: Optional[int], ordered_ids: List[int]) -> List[CategoryNode]:
        """按给定顺序把 display_order 重写为 1..n

        Raises:
            ParentNotFound: 父节点不存在
            NodeNotFound: 某个ID不是该父节点下的未删除子节点
        """
        with transaction_manager.transaction() as tx:
            if parent_id is not None:
                self._get_parent(owner, parent_id)

            children = self._sibling_query(owner, parent_id).all()
            by_id = {child.id: child for child in children}
            for node_id in ordered_ids:
                if node_id not in by_id:
                    raise NodeNotFound(node_id, f"节点 {node_id} 不是 {parent_id} 的子节点")

            for index, node_id in enumerate(ordered_ids, start=1):
                by_id[node_id].display_order = index
            tx.flush()
            return [by_id[node_id] for node_id in ordered_ids]

    # ==================== 节点查询 ====================

    def get_node(self, node_id: int) -> CategoryNode:
        node = self.node_model.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def get_node_by_slug(self, owner: Owner, slug: str, parent_id: Optional[int] = None) -> Optional[CategoryNode]:
        return self._sibling_query(owner, parent_id).filter(self.node_model.slug == slug).first()

    def get_roots(self, owner: Owner) -> List[CategoryNode]:
        return self._sibling_query(owner, None).order_by(
            self.node_model.display_order, self.node_model.id
        ).all()

    def get_children(self, node_id: int) -> List[CategoryNode]:
        return self.get_node(node_id).get_children()

    def search(self, owner: Owner, term: str, limit: Optional[int] = None) -> List[CategoryNode]:
        """按名称、slug、描述模糊搜索（不区分大小写）"""
        pattern = f"%{term.strip()}%"
        return self.node_model.query.filter(
            *self.node_model.owner_criteria(owner),
            or_(
                self.node_model.name.ilike(pattern),
                self.node_model.slug.ilike(pattern),
                self.node_model.description.ilike(pattern),
            ),
        ).order_by(self.node_model.depth, self.node_model.path_key).limit(
            limit or self.settings.search_limit
        ).all()

    def get_stats(self, owner: Owner) -> TreeStats:
        """所有者范围内的树统计"""
        nodes = self.node_model.query.filter(*self.node_model.owner_criteria(owner))

        per_depth = dict(
            nodes.with_entities(self.node_model.depth, func.count(self.node_model.id))
            .group_by(self.node_model.depth)
            .all()
        )
        total = sum(per_depth.values())
        active = nodes.filter(self.node_model.is_active.is_(True)).count()
        deleted = self.node_model.query.execution_options(include_deleted=True).filter(
            *self.node_model.owner_criteria(owner),
            self.node_model.deleted_at.isnot(None),
        ).count()

        items = self.item_model.query.filter(
            self.item_model.owner_kind == owner.kind,
            self.item_model.owner_id == owner.owner_id,
        )
        categorized = items.filter(self.item_model.node_id.isnot(None)).count()
        uncategorized = items.filter(self.item_model.node_id.is_(None)).count()

        return TreeStats(
            total_nodes=total,
            root_nodes=per_depth.get(0, 0),
            active_nodes=active,
            inactive_nodes=total - active,
            deleted_nodes=deleted,
            max_depth=max(per_depth) if per_depth else 0,
            nodes_per_depth=per_depth,
            categorized_items=categorized,
            uncategorized_items=uncategorized,
        )

    # ==================== 内部方法 ====================

    def _check_fields(self, fields: Dict[str, Any], extra: set = frozenset()) -> None:
        unknown = set(fields) - self.NODE_FIELDS - set(extra)
        if unknown:
            raise Err.invalid(f"不支持的节点字段: {sorted(unknown)}", fields=sorted(unknown))

    def _check_depth(self, depth: int) -> None:
        max_depth = self.settings.max_depth
        if depth > max_depth:
            logger.warning(f"深度 {depth} 超过上限 {max_depth}")
            raise DepthExceeded(depth, max_depth)

    def _ensure_owner(self, owner: Owner) -> None:
        model = self.collection_model if owner.kind == OwnerKind.COLLECTION else self.template_model
        if model.get(owner.owner_id) is None:
            raise OwnerNotFound(owner.kind.value, owner.owner_id)

    def _sibling_query(self, owner: Owner, parent_id: Optional[int]):
        query = self.node_model.query.filter(*self.node_model.owner_criteria(owner))
        if parent_id is None:
            return query.filter(self.node_model.parent_id.is_(None))
        return query.filter(self.node_model.parent_id == parent_id)

    def _check_sibling_slug(
        self,
        owner: Owner,
        parent_id: Optional[int],
        slug: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        query = self._sibling_query(owner, parent_id).filter(self.node_model.slug == slug)
        if exclude_id is not None:
            query = query.filter(self.node_model.id != exclude_id)
        if query.first() is not None:
            logger.warning(f"同级 slug 冲突: {slug} (parent_id={parent_id})")
            raise DuplicateSibling(slug, parent_id)

    def _get_parent(self, owner: Owner, parent_id: int) -> CategoryNode:
        """读取并锁定父节点"""
        parent = self.node_model.query.filter(
            self.node_model.id == parent_id
        ).with_for_update().first()
        if parent is None or not parent.in_scope(owner):
            raise ParentNotFound(parent_id)
        return parent

    def _lock_node(self, node_id: int) -> CategoryNode:
        node = self.node_model.query.filter(
            self.node_model.id == node_id
        ).with_for_update().first()
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def _flush_unique(self, tx, slug: str, parent_id: Optional[int], node: CategoryNode = None) -> None:
        """在保存点内 flush，唯一索引冲突转换为 DuplicateSibling"""
        try:
            with tx.savepoint():
                if node is not None:
                    tx.session.add(node)
                tx.session.flush()
        except IntegrityError as e:
            logger.warning(f"同级 slug 冲突（数据库约束）: {slug} (parent_id={parent_id})")
            raise DuplicateSibling(slug, parent_id) from e

    def _after_structure_change(self, owner: Owner) -> None:
        if owner.kind == OwnerKind.TEMPLATE:
            self.template_service.record_structure_change(owner.owner_id)
