"""
分类树模块 - 内容条目模型

内容条目挂在分类节点上（node_id 为空表示未分类）。
挂在模板节点上的条目可以携带某个已绑定集合的 ID，作为该集合的专属覆盖内容；
不带集合 ID 的条目是所有绑定集合共享的通用内容。
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ytree.orm import CoreModel, SoftDeleteMixin
from ytree.utils import compute_checksum

from ..enums import ItemType, OwnerKind
from ..owner import Owner, owner_of
from .node import enum_values


class ContentItem(CoreModel, SoftDeleteMixin):
    """内容条目

    字段说明:
        - node_id: 所属节点（为空表示未分类）
        - collection_id: 显式的集合归属（模板节点上的集合专属内容）
        - owner_kind / owner_id: 条目创建时所在的树范围，变为未分类后仍保留
        - item_type: 条目类型
        - version / checksum: 内容版本号与校验和，内容变化时更新
        - external_index_id / embedding_model / last_synced_at / synced_checksum:
          外部索引同步记录
    """

    # 参与校验和计算的内容字段
    CONTENT_FIELDS = (
        "item_type",
        "slug",
        "name",
        "content",
        "content_json",
        "trigger_event",
        "trigger_conditions",
        "property_key",
        "property_value",
    )

    node_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("category_node.id"), nullable=True, index=True, comment="所属节点ID"
    )
    collection_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("collection.id"), nullable=True, index=True, comment="集合ID"
    )
    owner_kind: Mapped[OwnerKind] = mapped_column(
        Enum(OwnerKind, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        comment="创建时所在树的所有者类型"
    )
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, comment="创建时所在树的所有者ID")

    item_type: Mapped[ItemType] = mapped_column(
        Enum(ItemType, native_enum=False, length=30, values_callable=enum_values),
        nullable=False,
        comment="条目类型"
    )

    # ==================== 内容字段 ====================

    slug: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="标识")
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, comment="名称")
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="文本内容")
    content_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, comment="结构化内容")
    trigger_event: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="触发事件")
    trigger_conditions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, comment="触发条件")
    property_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="属性键")
    property_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="属性值")

    display_order: Mapped[int] = mapped_column(Integer, default=0, comment="排序序号")
    priority: Mapped[int] = mapped_column(Integer, default=0, comment="优先级")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否启用")

    # ==================== 版本与同步 ====================

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False, comment="内容版本号")
    checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="内容校验和")

    external_index_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, comment="外部索引ID")
    embedding_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="向量模型")
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, comment="最近同步时间")
    synced_checksum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="同步时的校验和")

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="创建人")
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="更新人")

    def __repr__(self):
        return f"<ContentItem id={self.id} type={self.item_type} node={self.node_id}>"

    @property
    def owner(self) -> Owner:
        return owner_of(self.owner_kind, self.owner_id)

    @property
    def is_generic(self) -> bool:
        """模板节点上不属于任何集合的通用条目"""
        return self.collection_id is None

    @property
    def needs_sync(self) -> bool:
        return self.synced_checksum is None or self.synced_checksum != self.checksum

    def content_payload(self) -> dict:
        payload = {}
        for field in self.CONTENT_FIELDS:
            value = getattr(self, field)
            if isinstance(value, ItemType):
                value = value.value
            payload[field] = value
        return payload

    def compute_checksum(self) -> str:
        """按内容字段计算 SHA-256 校验和"""
        return compute_checksum(self.content_payload())

    def refresh_checksum(self) -> str:
        self.checksum = self.compute_checksum()
        return self.checksum
