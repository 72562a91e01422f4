"""
分类树模块 - 种子数据

使用示例:
    from ytree.taxonomy import CollectionOwner
    from ytree.taxonomy.seeds import seed_taxonomy

    with db_session_scope():
        nodes = seed_taxonomy(CollectionOwner(collection.id))

重复执行不会产生重复节点（按 slug 幂等创建）。
"""

import os
from typing import Any, Dict, List, Optional

import yaml

from ytree.log import get_logger
from ytree.orm import transaction_manager

from ..models import CategoryNode
from ..owner import Owner
from ..services import NodeService

logger = get_logger("ytree.taxonomy.seeds")

DEFAULT_SEED_FILE = os.path.join(os.path.dirname(__file__), "engagement_categories.yaml")

# 种子文件中除 slug / name / children 外允许的节点字段
SEED_FIELDS = ("description", "icon", "color", "is_active", "is_expandable", "meta_data")


def load_seed_file(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """读取种子文件，返回根分类列表"""
    with open(path or DEFAULT_SEED_FILE, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data.get("categories", [])


def seed_taxonomy(
    owner: Owner,
    path: Optional[str] = None,
    service: Optional[NodeService] = None,
) -> List[CategoryNode]:
    """把种子分类树写入所有者范围

    Args:
        owner: 所有者范围
        path: 种子文件路径，默认使用内置的 engagement_categories.yaml
        service: 节点服务

    Returns:
        种子文件中的全部节点（按写入顺序）
    """
    service = service or NodeService()
    nodes: List[CategoryNode] = []

    def _seed(entries, parent: Optional[CategoryNode]):
        for order, entry in enumerate(entries, start=1):
            fields = {key: entry[key] for key in SEED_FIELDS if key in entry}
            if parent is not None and "color" not in fields:
                fields["color"] = parent.color
            fields["display_order"] = entry.get("display_order", order)

            node = service.ensure_node(
                owner,
                entry["slug"],
                entry["name"],
                parent_id=parent.id if parent is not None else None,
                **fields,
            )
            nodes.append(node)
            _seed(entry.get("children") or [], node)

    with transaction_manager.transaction():
        _seed(load_seed_file(path), None)

    logger.info(f"种子分类写入完成: {len(nodes)} 个节点 (owner={owner})")
    return nodes


__all__ = ["load_seed_file", "seed_taxonomy", "DEFAULT_SEED_FILE"]
