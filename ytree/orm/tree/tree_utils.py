"""树形结构工具函数

使用示例:
    from ytree.orm.tree import build_tree_list

    flat_list = [
        {"id": 1, "parent_id": None, "name": "根节点"},
        {"id": 2, "parent_id": 1, "name": "子节点1"},
    ]
    tree = build_tree_list(flat_list)
"""

from typing import Any, Callable, Dict, List, Optional


def build_tree_list(
    nodes: List[Dict[str, Any]],
    id_field: str = "id",
    parent_field: str = "parent_id",
    children_field: str = "children",
    sort_key: Optional[Callable[[Dict], Any]] = None,
) -> List[Dict[str, Any]]:
    """将扁平列表构建为嵌套树结构

    父节点不在列表中的节点作为根返回（子树查询时子树根的父节点不在结果中）。

    Args:
        nodes: 扁平的节点列表，每个节点是一个字典
        id_field: ID 字段名
        parent_field: 父节点 ID 字段名
        children_field: 子节点列表字段名（输出中使用）
        sort_key: 排序函数，用于对同级节点排序

    Returns:
        嵌套的树形结构列表
    """
    if not nodes:
        return []

    node_map: Dict[Any, Dict[str, Any]] = {}
    for node in nodes:
        node_copy = dict(node)
        node_copy[children_field] = []
        node_map[node_copy[id_field]] = node_copy

    roots: List[Dict[str, Any]] = []
    for node in node_map.values():
        parent_id = node.get(parent_field)
        if parent_id is not None and parent_id in node_map:
            node_map[parent_id][children_field].append(node)
        else:
            roots.append(node)

    if sort_key:
        _sort_tree_recursive(roots, children_field, sort_key)

    return roots


def _sort_tree_recursive(
    nodes: List[Dict[str, Any]],
    children_field: str,
    sort_key: Callable[[Dict], Any],
):
    nodes.sort(key=sort_key)
    for node in nodes:
        children = node.get(children_field, [])
        if children:
            _sort_tree_recursive(children, children_field, sort_key)


__all__ = ["build_tree_list"]
