"""
分类树模块 - 模板相关模型

- Template: 模板，拥有一棵独立的节点树
- TemplateVersion: 模板树结构快照，每次结构变更生成一个
- TemplateBinding: 集合与模板的绑定记录
"""

from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from ytree.orm import CoreModel, SoftDeleteMixin


class Template(CoreModel):
    """模板

    字段说明:
        - slug: 全局唯一标识
        - template_type: 模板类型（如 persona_stage）
        - version: 结构版本号，从 1 开始，每次树结构变更 +1
    """

    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, comment="唯一标识")
    name: Mapped[str] = mapped_column(String(200), nullable=False, comment="名称")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="描述")
    template_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="模板类型")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否启用")
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False, comment="结构版本号")
    meta_data: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True, comment="扩展信息")

    def __repr__(self):
        return f"<Template id={self.id} slug={self.slug!r} version={self.version}>"


class TemplateVersion(CoreModel):
    """模板结构快照

    structure 为所有未删除节点的列表:
        [{"id", "parent_id", "slug", "name", "depth", "path"}, ...]
    """

    __table_args__ = (
        UniqueConstraint("template_id", "version", name="uq_template_version"),
    )

    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("template.id"), nullable=False, index=True, comment="模板ID"
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, comment="版本号")
    structure: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list, comment="树结构快照")
    checksum: Mapped[str] = mapped_column(String(64), nullable=False, comment="结构校验和（SHA-256）")

    def node_ids(self) -> set:
        return {row["id"] for row in self.structure or []}


class TemplateBinding(CoreModel, SoftDeleteMixin):
    """集合与模板的绑定

    字段说明:
        - template_version: 绑定所解析的模板版本（绑定时的当前版本）
        - override_node_id: 可选，绑定固定到模板中的某个节点
        - 解绑为软删除，同一对 (collection_id, template_id) 只允许一个有效绑定
    """

    __table_args__ = (
        Index(
            "uq_template_binding_pair",
            "collection_id", "template_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collection.id"), nullable=False, index=True, comment="集合ID"
    )
    template_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("template.id"), nullable=False, index=True, comment="模板ID"
    )
    template_version: Mapped[int] = mapped_column(Integer, nullable=False, comment="绑定的模板版本")
    override_node_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("category_node.id"), nullable=True, comment="固定的模板节点ID"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否启用")

    def __repr__(self):
        return (
            f"<TemplateBinding collection={self.collection_id} "
            f"template={self.template_id} v{self.template_version}>"
        )
