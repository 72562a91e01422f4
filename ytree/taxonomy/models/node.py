"""
分类树模块 - 分类节点模型

集合分类树和模板树共用同一张节点表，按 (owner_kind, owner_id) 区分所有者范围。
"""

from typing import Optional

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, JSON, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from ytree.orm import CoreModel, SoftDeleteMixin, TreeFieldsMixin, TreeMixin

from ..enums import OwnerKind
from ..owner import Owner, owner_of


def enum_values(enum_cls):
    """Enum 列按值（而不是成员名）存储"""
    return [member.value for member in enum_cls]


class CategoryNode(CoreModel, SoftDeleteMixin, TreeFieldsMixin, TreeMixin):
    """分类节点

    字段说明:
        - owner_kind / owner_id: 所有者范围（集合或模板），二者都不可为空
        - parent_id: 父节点ID（为空表示根节点）
        - slug: 同级唯一的短标识
        - name: 显示名称
        - path / path_key / depth / display_order: 由 TreeFieldsMixin 提供
        - description / icon / color / is_expandable / meta_data: 展示信息
        - is_active: 是否启用
        - deleted_at / deleted_by: 软删除标记与操作人

    唯一约束:
        同一所有者范围、同一父节点下，未删除节点的 slug 唯一。
        根节点的 parent_id 为 NULL，单独用一个部分唯一索引约束。

    树形操作方法（继承自 TreeMixin）:
        - get_children() / get_descendants() / get_ancestors()
    """

    __table_args__ = (
        Index(
            "uq_category_node_sibling_slug",
            "owner_kind", "owner_id", "parent_id", "slug",
            unique=True,
            sqlite_where=text("deleted_at IS NULL AND parent_id IS NOT NULL"),
            postgresql_where=text("deleted_at IS NULL AND parent_id IS NOT NULL"),
        ),
        Index(
            "uq_category_node_root_slug",
            "owner_kind", "owner_id", "slug",
            unique=True,
            sqlite_where=text("deleted_at IS NULL AND parent_id IS NULL"),
            postgresql_where=text("deleted_at IS NULL AND parent_id IS NULL"),
        ),
        Index("ix_category_node_owner", "owner_kind", "owner_id"),
    )

    # ==================== 所有者范围 ====================

    owner_kind: Mapped[OwnerKind] = mapped_column(
        Enum(OwnerKind, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        comment="所有者类型（collection / template）"
    )
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, comment="所有者ID")

    # ==================== 树形结构字段 ====================

    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("category_node.id"),
        nullable=True,
        index=True,
        comment="父节点ID"
    )

    # ==================== 基础字段 ====================

    slug: Mapped[str] = mapped_column(String(100), nullable=False, comment="同级唯一标识")
    name: Mapped[str] = mapped_column(String(200), nullable=False, comment="显示名称")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="描述")
    icon: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="图标")
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, comment="颜色")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否启用")
    is_expandable: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否可展开")

    meta_data: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSON, nullable=True, default=None, comment="扩展信息"
    )

    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="创建人")
    updated_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="更新人")

    def __repr__(self):
        return f"<CategoryNode id={self.id} slug={self.slug!r} depth={self.depth}>"

    @property
    def owner(self) -> Owner:
        return owner_of(self.owner_kind, self.owner_id)

    @classmethod
    def owner_criteria(cls, owner: Owner):
        """按所有者范围过滤的条件，用法: query.filter(*CategoryNode.owner_criteria(owner))"""
        return (cls.owner_kind == owner.kind, cls.owner_id == owner.owner_id)

    def in_scope(self, owner: Owner) -> bool:
        return OwnerKind(self.owner_kind) == owner.kind and self.owner_id == owner.owner_id
