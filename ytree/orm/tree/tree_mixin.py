"""树形结构 Mixin

提供通用的树形操作方法，使用物化路径（Materialized Path）模式。

物化路径模式说明：
    - 每个节点存储从根到自身的 ID 序列，如 [1, 2, 3]，并派生定宽的 path_key
    - 查询子孙使用 path_key 前缀匹配，查询祖先直接读 path
    - 移动节点时需要重算所有子孙的路径（见 SubtreeArena）

使用示例:
    node = CategoryNode.get(1)
    children = node.get_children()
    descendants = node.get_descendants()
    ancestors = node.get_ancestors()
    print(" > ".join(a.name for a in ancestors))
"""

from typing import List, Optional


class TreeMixin:
    """树形结构 Mixin

    字段要求（TreeFieldsMixin 提供 path / path_key / depth / display_order，使用者定义 parent_id）
    """

    # 排序字段名（子类可覆盖）
    __tree_sort_field__: str = "display_order"

    def _get_sort_field(self):
        return getattr(self.__class__, self.__tree_sort_field__, None)

    def compute_path(self, parent: Optional["TreeMixin"]) -> List[int]:
        """根据父节点计算自身路径（自身必须已有 ID）"""
        if parent is None:
            return [self.id]
        return list(parent.path) + [self.id]

    # ==================== 节点查询方法 ====================

    def get_children(self) -> List:
        """获取直接子节点，按排序字段排序"""
        query = self.__class__.query.filter(self.__class__.parent_id == self.id)
        sort_field = self._get_sort_field()
        if sort_field is not None:
            query = query.order_by(sort_field, self.__class__.id)
        return query.all()

    def get_descendants(self, include_self: bool = False) -> List:
        """获取所有子孙节点（path_key 前缀匹配），按路径排序"""
        if not self.path_key:
            return []
        query = self.__class__.query.filter(self.__class__.path_key.like(f"{self.path_key}%"))
        if not include_self:
            query = query.filter(self.__class__.id != self.id)
        return query.order_by(self.__class__.path_key).all()

    def get_ancestors(self) -> List:
        """获取所有祖先节点，从根节点开始"""
        if not self.path or self.parent_id is None:
            return []
        ancestor_ids = [i for i in self.path if i != self.id]
        nodes = self.__class__.query.filter(self.__class__.id.in_(ancestor_ids)).all()
        by_id = {n.id: n for n in nodes}
        return [by_id[i] for i in ancestor_ids if i in by_id]


__all__ = ["TreeMixin"]
