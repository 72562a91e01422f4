"""树形结构字段定义

提供标准的树形字段定义 Mixin，简化模型定义。

路径约定:
    - path: JSON 数组，从根到自身的 ID 序列（含自身），如 [1, 5, 9]
    - depth: 根节点为 0，depth == len(path) - 1
    - path_key: 由 path 派生的定宽字符串，如 "0000000001/0000000005/0000000009/"，
      只用于子树前缀过滤（LIKE 'prefix%'）和按路径排序，不会被解析回 path

使用示例:
    from ytree.orm import CoreModel
    from ytree.orm.tree import TreeFieldsMixin, TreeMixin

    class CategoryNode(CoreModel, TreeFieldsMixin, TreeMixin):
        parent_id = mapped_column(Integer, ForeignKey("category_node.id"), nullable=True)
"""

from typing import List, Optional, Sequence

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

# 单个 ID 在 path_key 中的宽度（十进制位数）
PATH_KEY_WIDTH = 10
PATH_KEY_SEPARATOR = "/"


def encode_path_key(path: Sequence[int]) -> str:
    """把 ID 序列编码为可做前缀匹配、可按字典序排序的字符串"""
    return "".join(f"{node_id:0{PATH_KEY_WIDTH}d}{PATH_KEY_SEPARATOR}" for node_id in path)


class TreeFieldsMixin:
    """树形结构字段 Mixin

    提供 path / path_key / depth / display_order 字段。
    parent_id 需要使用者自行定义（外键目标表名因模型而异）。
    """

    path: Mapped[List[int]] = mapped_column(
        JSON,
        nullable=True,
        default=None,
        comment="从根到自身的节点ID序列（含自身）"
    )

    path_key: Mapped[Optional[str]] = mapped_column(
        String(512),
        nullable=True,
        default=None,
        index=True,
        comment="定宽路径键，用于子树前缀查询和路径排序"
    )

    depth: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        index=True,
        comment="节点深度（根节点为0）"
    )

    display_order: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="同级排序序号"
    )

    def set_path(self, path: Sequence[int]) -> None:
        """写入 path，同时维护 depth 和 path_key"""
        path = [int(i) for i in path]
        self.path = path
        self.depth = len(path) - 1
        self.path_key = encode_path_key(path)


__all__ = [
    "TreeFieldsMixin",
    "encode_path_key",
    "PATH_KEY_WIDTH",
]
