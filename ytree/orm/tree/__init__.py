"""树形结构支持

- TreeFieldsMixin: path / path_key / depth / display_order 字段
- TreeMixin: 子节点、子孙、祖先等查询方法
- SubtreeArena: 纯内存子树工作区（高度、包含判断、路径重算）
- build_tree_list: 扁平列表转嵌套树
"""

from .tree_fields import TreeFieldsMixin, encode_path_key, PATH_KEY_WIDTH
from .tree_mixin import TreeMixin
from .arena import ArenaNode, SubtreeArena
from .tree_utils import build_tree_list

__all__ = [
    "TreeFieldsMixin",
    "TreeMixin",
    "encode_path_key",
    "PATH_KEY_WIDTH",
    "ArenaNode",
    "SubtreeArena",
    "build_tree_list",
]
