"""
分类树模块 (Taxonomy Module)

提供层级分类树与模板树的存储、维护和查询，支持：
- 任意层级的父子树，物化路径（path / depth）同步维护，深度上限可配置
- 同级 slug 唯一（数据库部分唯一索引保证）
- 三种删除策略：reassign / cascade / block
- 模板树被多个集合绑定共享，集合可以在模板节点上挂专属内容
- 模板结构版本快照与绑定迁移

快速开始
--------
    from ytree.orm import init_database, Base, get_engine
    from ytree.taxonomy import (
        Collection, CollectionOwner, NodeService, DeletionService, TreeQueryService,
    )

    init_database("sqlite:///./taxonomy.db")
    Base.metadata.create_all(get_engine())

    collection = Collection(slug="main", name="Main").save(commit=True)
    owner = CollectionOwner(collection.id)

    nodes = NodeService()
    prayer = nodes.create_node(owner, "prayer", "Prayer")
    rooms = nodes.create_node(owner, "prayer-rooms", "Prayer Rooms", parent_id=prayer.id)

    DeletionService().delete_node(rooms.id, "reassign")
    rows = TreeQueryService().get_tree(owner)
"""

from .enums import OwnerKind, ItemType, DeletionPolicy
from .owner import CollectionOwner, TemplateOwner, Owner, owner_of, resolve_owner
from .exceptions import (
    NodeNotFound,
    ParentNotFound,
    OwnerNotFound,
    TemplateNotFound,
    BindingNotFound,
    ContentItemNotFound,
    DuplicateSibling,
    DeletionBlocked,
    TemplateAlreadyBound,
    TemplateNodeInUse,
    DepthExceeded,
    InvalidOwnerScope,
    CycleDetected,
    TreeIntegrityError,
)
from .models import (
    Collection,
    CategoryNode,
    Template,
    TemplateVersion,
    TemplateBinding,
    ContentItem,
)
from .schemas import (
    NodeCreate,
    NodeUpdate,
    NodeResponse,
    TreeNodeRow,
    DescendantRow,
    ContentItemResponse,
    DeletionResult,
    TemplateBindingResponse,
    BindingMigration,
    TreeStats,
)
from .deletion import DeletionPlan, DeletionSnapshot, plan_deletion
from .services import (
    TemplateService,
    NodeService,
    DeletionService,
    ContentService,
    TreeQueryService,
)

__all__ = [
    # 枚举
    "OwnerKind",
    "ItemType",
    "DeletionPolicy",
    # 所有者
    "CollectionOwner",
    "TemplateOwner",
    "Owner",
    "owner_of",
    "resolve_owner",
    # 异常
    "NodeNotFound",
    "ParentNotFound",
    "OwnerNotFound",
    "TemplateNotFound",
    "BindingNotFound",
    "ContentItemNotFound",
    "DuplicateSibling",
    "DeletionBlocked",
    "TemplateAlreadyBound",
    "TemplateNodeInUse",
    "DepthExceeded",
    "InvalidOwnerScope",
    "CycleDetected",
    "TreeIntegrityError",
    # 模型
    "Collection",
    "CategoryNode",
    "Template",
    "TemplateVersion",
    "TemplateBinding",
    "ContentItem",
    # Schema
    "NodeCreate",
    "NodeUpdate",
    "NodeResponse",
    "TreeNodeRow",
    "DescendantRow",
    "ContentItemResponse",
    "DeletionResult",
    "TemplateBindingResponse",
    "BindingMigration",
    "TreeStats",
    # 删除策略
    "DeletionPlan",
    "DeletionSnapshot",
    "plan_deletion",
    # 服务
    "TemplateService",
    "NodeService",
    "DeletionService",
    "ContentService",
    "TreeQueryService",
]
