"""
分类树模块 - 集合模型

集合是外部概念，这里只保留作为所有者范围所需的最小记录。
"""

from typing import Optional

from sqlalchemy import Boolean, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ytree.orm import CoreModel


class Collection(CoreModel):
    """集合"""

    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, comment="唯一标识")
    name: Mapped[str] = mapped_column(String(200), nullable=False, comment="名称")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="描述")
    collection_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, comment="集合类型")
    display_order: Mapped[int] = mapped_column(Integer, default=0, comment="排序序号")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否启用")
    meta_data: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True, comment="扩展信息")

    def __repr__(self):
        return f"<Collection id={self.id} slug={self.slug!r}>"
