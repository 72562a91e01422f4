"""
分类树模块 - 删除协调服务

读取节点和条目状态，调用纯函数策略（ytree.taxonomy.deletion）生成删除计划，
在一个事务中应用。任何一步失败整体回滚，不会留下只删了一半的树。

删除后保证:
    - 没有未删除的条目指向已删除节点
    - 没有未删除的节点的父节点已删除

使用示例:
    service = DeletionService()

    result = service.delete_node(node.id, DeletionPolicy.REASSIGN, actor=current_user.id)
    result = service.safe_delete_node(node.id, "block")   # 拒绝时返回 success=False
"""

from typing import Optional, Type, Union

from sqlalchemy.exc import IntegrityError

from ytree.config import TreeSettings, get_tree_settings
from ytree.log import get_logger
from ytree.orm import get_user_id, transaction_manager
from ytree.orm.tree import SubtreeArena

from ..deletion import DeletionPlan, DeletionSnapshot, NodeSnapshot, plan_deletion
from ..enums import DeletionPolicy, OwnerKind, parse_enum
from ..exceptions import (
    DeletionBlocked,
    DuplicateSibling,
    NodeNotFound,
    TemplateNodeInUse,
    TreeIntegrityError,
)
from ..models import CategoryNode, ContentItem
from ..schemas import DeletionResult
from .template_service import TemplateService

logger = get_logger("ytree.taxonomy.deletion")


class DeletionService:
    """删除协调服务"""

    node_model: Type[CategoryNode] = CategoryNode
    item_model: Type[ContentItem] = ContentItem

    def __init__(self, settings: TreeSettings = None, template_service: TemplateService = None):
        self._settings = settings
        self.template_service = template_service or TemplateService()

    @property
    def settings(self) -> TreeSettings:
        return self._settings or get_tree_settings()

    # ==================== 删除 ====================

    def delete_node(
        self,
        node_id: int,
        mode: Union[DeletionPolicy, str, None] = None,
        actor: Optional[int] = None,
    ) -> DeletionResult:
        """按策略删除节点

        Args:
            node_id: 节点ID
            mode: reassign / cascade / block，不传则使用配置的默认策略
            actor: 操作人ID，不传则取 session 上设置的当前用户

        Returns:
            DeletionResult(success=True, ...)

        Raises:
            ValidationException: mode 不是合法的删除策略
            NodeNotFound: 节点不存在或已删除
            DeletionBlocked: block 策略下节点非空
            DuplicateSibling: reassign 提升子节点时与新父级下的 slug 冲突
            TemplateNodeInUse: 要删除的模板节点被有效绑定固定
        """
        policy = parse_enum(DeletionPolicy, mode or self.settings.default_deletion_policy, "mode")

        with transaction_manager.transaction() as tx:
            session = tx.session
            node = self.node_model.query.filter(
                self.node_model.id == node_id
            ).with_for_update().first()
            if node is None:
                raise NodeNotFound(node_id)

            snapshot = self._load_snapshot(node)
            self._check_template_usage(node, policy, snapshot.subtree)

            try:
                plan = plan_deletion(policy, snapshot)
            except DeletionBlocked:
                logger.warning(
                    f"拒绝删除节点 {node.slug} (id={node.id})：{snapshot.child_count} 个子节点，"
                    f"{snapshot.content_count} 个内容条目"
                )
                raise

            if actor is None:
                actor = get_user_id(session)
            self._apply(tx, node, plan, actor)

            if node.owner_kind == OwnerKind.TEMPLATE:
                self.template_service.record_structure_change(node.owner_id)

            logger.info(
                f"删除节点: {node.slug} (id={node.id}, policy={policy.value})，"
                f"影响子节点 {plan.affected_children} 个，内容条目 {plan.affected_content_items} 个"
            )
            return DeletionResult(
                success=True,
                message=f"节点 {node.name} 已删除（{policy.value}）",
                policy=policy,
                affected_content_items=plan.affected_content_items,
                affected_children=plan.affected_children,
                deleted_node_ids=plan.deletes,
            )

    def safe_delete_node(
        self,
        node_id: int,
        mode: Union[DeletionPolicy, str, None] = None,
        actor: Optional[int] = None,
    ) -> DeletionResult:
        """同 delete_node()，但 block 拒绝时返回 success=False 而不是抛出异常"""
        try:
            return self.delete_node(node_id, mode, actor)
        except DeletionBlocked as e:
            return e.to_result()

    # ==================== 内部方法 ====================

    def _load_snapshot(self, node: CategoryNode) -> DeletionSnapshot:
        rows = node.get_descendants(include_self=True)
        subtree = SubtreeArena.from_rows(node.id, rows)
        stray = subtree.unreachable()
        if stray:
            logger.error(f"节点 {node.id} 的子树中有节点与 parent_id 不一致: {stray}")
            raise TreeIntegrityError(node.id, f"子树路径与父子关系不一致: {stray}")

        children = [NodeSnapshot.of(n) for n in rows if n.parent_id == node.id]

        node_items = self.item_model.query.with_entities(self.item_model.id).filter(
            self.item_model.node_id == node.id
        ).order_by(self.item_model.id).all()
        subtree_items = self.item_model.query.with_entities(self.item_model.id).filter(
            self.item_model.node_id.in_(subtree.ids())
        ).order_by(self.item_model.id).all()

        siblings = self.node_model.query.with_entities(self.node_model.slug).filter(
            *self.node_model.owner_criteria(node.owner),
            self.node_model.id != node.id,
        )
        if node.parent_id is None:
            siblings = siblings.filter(self.node_model.parent_id.is_(None))
        else:
            siblings = siblings.filter(self.node_model.parent_id == node.parent_id)

        return DeletionSnapshot(
            node=NodeSnapshot.of(node),
            children=children,
            subtree=subtree,
            node_item_ids=[row.id for row in node_items],
            subtree_item_ids=[row.id for row in subtree_items],
            sibling_slugs={row.slug for row in siblings.all()},
        )

    def _check_template_usage(self, node: CategoryNode, policy: DeletionPolicy, subtree: SubtreeArena) -> None:
        if node.owner_kind != OwnerKind.TEMPLATE:
            return
        node_ids = subtree.ids() if policy == DeletionPolicy.CASCADE else [node.id]
        bindings = self.template_service.active_override_bindings(node_ids)
        if bindings:
            in_use = bindings[0].override_node_id
            raise TemplateNodeInUse(in_use, {b.collection_id for b in bindings})

    def _apply(self, tx, node: CategoryNode, plan: DeletionPlan, actor: Optional[int]) -> None:
        """应用删除计划：先软删除（释放 slug），再移动节点和条目"""
        session = tx.session
        ids = set(plan.deletes) | {move.node_id for move in plan.node_moves}
        nodes = {n.id: n for n in self.node_model.query.filter(self.node_model.id.in_(ids)).all()}
        nodes[node.id] = node

        for node_id in plan.deletes:
            nodes[node_id].soft_delete(actor)
        session.flush()

        for move in plan.node_moves:
            target = nodes[move.node_id]
            target.parent_id = move.parent_id
            target.set_path(move.path)

        if plan.item_moves:
            item_ids = [move.item_id for move in plan.item_moves]
            items = {i.id: i for i in self.item_model.query.filter(self.item_model.id.in_(item_ids)).all()}
            for move in plan.item_moves:
                items[move.item_id].node_id = move.node_id

        try:
            session.flush()
        except IntegrityError as e:
            raise DuplicateSibling(node.slug, node.parent_id) from e
