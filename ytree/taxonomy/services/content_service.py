"""
分类树模块 - 内容条目服务

集合规则:
    - 集合树节点上的条目携带该集合ID（未传时自动补上，传了别的集合ID则拒绝）
    - 模板树节点上的条目可以不带集合ID（通用条目），
      也可以带一个已绑定该模板的集合ID（集合专属条目）

使用示例:
    service = ContentService()

    item = service.attach_item(stage.id, ItemType.PROMPT, "Welcome", collection_id=collection_a.id)
    service.update_item(item.id, content="Welcome back")
    items = service.list_items(stage.id, collection_id=collection_a.id)
"""

from datetime import datetime
from typing import Any, List, Optional, Type, Union

from sqlalchemy import or_

from ytree.exceptions import Err
from ytree.log import get_logger
from ytree.orm import get_user_id, transaction_manager

from ..enums import ItemType, OwnerKind, parse_enum
from ..exceptions import ContentItemNotFound, InvalidOwnerScope, NodeNotFound
from ..models import CategoryNode, ContentItem
from ..owner import Owner
from .template_service import TemplateService

logger = get_logger("ytree.taxonomy.content")


def visible_items_criteria(item_model, collection_id: Optional[int], include_generic: bool = True):
    """集合视角下可见条目的过滤条件

    collection_id 为空时不过滤；否则只保留该集合的条目，include_generic 时再加上通用条目。
    """
    if collection_id is None:
        return ()
    if include_generic:
        return (or_(item_model.collection_id == collection_id, item_model.collection_id.is_(None)),)
    return (item_model.collection_id == collection_id,)


class ContentService:
    """内容条目服务"""

    node_model: Type[CategoryNode] = CategoryNode
    item_model: Type[ContentItem] = ContentItem

    # attach / update 允许设置的字段
    ITEM_FIELDS = {
        "slug",
        "name",
        "content",
        "content_json",
        "trigger_event",
        "trigger_conditions",
        "property_key",
        "property_value",
        "display_order",
        "priority",
        "is_active",
    }

    def __init__(self, template_service: TemplateService = None):
        self.template_service = template_service or TemplateService()

    # ==================== 条目 CRUD ====================

    def attach_item(
        self,
        node_id: int,
        item_type: Union[ItemType, str],
        content: Optional[str] = None,
        collection_id: Optional[int] = None,
        **fields: Any,
    ) -> ContentItem:
        """在节点上添加内容条目

        Raises:
            ValidationException: 条目类型非法或包含不支持的字段
            NodeNotFound: 节点不存在或已删除
            InvalidOwnerScope: 集合ID与节点范围不符，或集合未绑定该模板
        """
        self._check_fields(fields)

        with transaction_manager.transaction() as tx:
            node = self._get_node(node_id)
            collection_id = self._resolve_collection(node, collection_id)

            item = self.item_model(
                node_id=node.id,
                collection_id=collection_id,
                owner_kind=node.owner_kind,
                owner_id=node.owner_id,
                item_type=parse_enum(ItemType, item_type, "item_type"),
                content=content,
                **fields,
            )
            item.version = 1
            item.refresh_checksum()
            tx.session.add(item)
            tx.flush()

            logger.info(
                f"添加内容条目: id={item.id}, type={item.item_type.value}, node={node.id}, "
                f"collection={collection_id}"
            )
            return item

    def get_item(self, item_id: int) -> ContentItem:
        item = self.item_model.get(item_id)
        if item is None:
            raise ContentItemNotFound(item_id)
        return item

    def update_item(self, item_id: int, **fields: Any) -> ContentItem:
        """更新条目，内容字段有变化时 version +1 并重算 checksum"""
        self._check_fields(fields)
        if "item_type" in fields:
            fields["item_type"] = parse_enum(ItemType, fields["item_type"], "item_type")

        with transaction_manager.transaction() as tx:
            item = self.get_item(item_id)
            before = item.compute_checksum()
            for key, value in fields.items():
                setattr(item, key, value)

            after = item.compute_checksum()
            if after != before:
                item.version = (item.version or 1) + 1
                item.checksum = after
            tx.flush()
            return item

    def move_item(self, item_id: int, node_id: Optional[int]) -> ContentItem:
        """在同一所有者范围内移动条目，node_id 为空表示移为未分类"""
        with transaction_manager.transaction() as tx:
            item = self.get_item(item_id)
            if node_id is not None:
                node = self._get_node(node_id)
                if not node.in_scope(item.owner):
                    raise InvalidOwnerScope(
                        f"条目 {item.id} 只能在 {item.owner_kind.value}#{item.owner_id} 的树内移动",
                        item_id=item.id,
                        node_id=node_id,
                    )
            item.node_id = node_id
            tx.flush()
            logger.info(f"移动内容条目: id={item.id} -> node={node_id}")
            return item

    def purge_item(self, item_id: int, actor: Optional[int] = None) -> ContentItem:
        """软删除条目"""
        with transaction_manager.transaction() as tx:
            item = self.get_item(item_id)
            item.soft_delete(actor if actor is not None else get_user_id(tx.session))
            tx.flush()
            logger.info(f"删除内容条目: id={item.id}")
            return item

    # ==================== 查询 ====================

    def list_items(
        self,
        node_id: int,
        collection_id: Optional[int] = None,
        include_generic: bool = True,
    ) -> List[ContentItem]:
        """节点上的条目

        Args:
            node_id: 节点ID
            collection_id: 集合视角，为空时返回全部条目
            include_generic: 集合视角下是否包含通用条目
        """
        node = self._get_node(node_id)
        return self.item_model.query.filter(
            self.item_model.node_id == node.id,
            *visible_items_criteria(self.item_model, collection_id, include_generic),
        ).order_by(self.item_model.display_order, self.item_model.id).all()

    def list_uncategorized(self, owner: Owner) -> List[ContentItem]:
        return self.item_model.query.filter(
            self.item_model.owner_kind == owner.kind,
            self.item_model.owner_id == owner.owner_id,
            self.item_model.node_id.is_(None),
        ).order_by(self.item_model.id).all()

    # ==================== 外部索引同步 ====================

    def list_pending_sync(self, limit: int = 100) -> List[ContentItem]:
        """从未同步或同步后内容有变化的启用条目"""
        return self.item_model.query.filter(
            self.item_model.is_active.is_(True),
            or_(
                self.item_model.synced_checksum.is_(None),
                self.item_model.synced_checksum != self.item_model.checksum,
            ),
        ).order_by(self.item_model.id).limit(limit).all()

    def mark_synced(
        self,
        item_id: int,
        external_index_id: str,
        embedding_model: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> ContentItem:
        with transaction_manager.transaction() as tx:
            item = self.get_item(item_id)
            item.external_index_id = external_index_id
            if embedding_model is not None:
                item.embedding_model = embedding_model
            item.last_synced_at = synced_at or datetime.now()
            item.synced_checksum = item.checksum
            tx.flush()
            return item

    # ==================== 内部方法 ====================

    def _check_fields(self, fields) -> None:
        unknown = set(fields) - self.ITEM_FIELDS - {"item_type"}
        if unknown:
            raise Err.invalid(f"不支持的条目字段: {sorted(unknown)}", fields=sorted(unknown))

    def _get_node(self, node_id: int) -> CategoryNode:
        node = self.node_model.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def _resolve_collection(self, node: CategoryNode, collection_id: Optional[int]) -> Optional[int]:
        if node.owner_kind == OwnerKind.COLLECTION:
            if collection_id is None:
                return node.owner_id
            if collection_id != node.owner_id:
                raise InvalidOwnerScope(
                    f"节点 {node.id} 属于集合 {node.owner_id}，不能挂集合 {collection_id} 的条目",
                    node_id=node.id,
                    collection_id=collection_id,
                )
            return collection_id

        if collection_id is not None and not self.template_service.is_bound(collection_id, node.owner_id):
            raise InvalidOwnerScope(
                f"集合 {collection_id} 未绑定模板 {node.owner_id}",
                node_id=node.id,
                collection_id=collection_id,
            )
        return collection_id
