"""
分类树模块 - Schema

服务层对外返回的数据结构。响应类都继承 DTO，可直接由 ORM 对象构造:
    NodeResponse.model_validate(node)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import DeletionPolicy, ItemType, OwnerKind


class DTO(BaseModel):
    """响应基类，支持从 ORM 对象读取属性"""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, extra="ignore")


# ==================== 节点 ====================

class NodeCreate(BaseModel):
    """创建节点请求（集合 ID 与模板 ID 二选一，由 resolve_owner 校验）"""
    collection_id: Optional[int] = Field(None, description="所属集合ID")
    template_id: Optional[int] = Field(None, description="所属模板ID")
    parent_id: Optional[int] = Field(None, description="父节点ID")
    slug: str = Field(..., min_length=1, max_length=100, description="同级唯一标识")
    name: str = Field(..., min_length=1, max_length=200, description="显示名称")
    description: Optional[str] = Field(None, description="描述")
    icon: Optional[str] = Field(None, max_length=100, description="图标")
    color: Optional[str] = Field(None, max_length=20, description="颜色")
    display_order: int = Field(0, ge=0, description="排序序号")
    is_active: bool = Field(True, description="是否启用")
    is_expandable: bool = Field(True, description="是否可展开")
    meta_data: Optional[Dict[str, Any]] = Field(None, description="扩展信息")

    def node_fields(self) -> Dict[str, Any]:
        """除所有者、父节点、slug、name 之外的字段"""
        return self.model_dump(
            exclude={"collection_id", "template_id", "parent_id", "slug", "name"},
            exclude_none=True,
        )


class NodeUpdate(BaseModel):
    """更新节点请求，只有显式设置的字段会被更新"""
    slug: Optional[str] = Field(None, min_length=1, max_length=100, description="同级唯一标识")
    name: Optional[str] = Field(None, min_length=1, max_length=200, description="显示名称")
    parent_id: Optional[int] = Field(None, description="新父节点ID（null 表示移为根节点）")
    description: Optional[str] = Field(None, description="描述")
    icon: Optional[str] = Field(None, max_length=100, description="图标")
    color: Optional[str] = Field(None, max_length=20, description="颜色")
    display_order: Optional[int] = Field(None, ge=0, description="排序序号")
    is_active: Optional[bool] = Field(None, description="是否启用")
    is_expandable: Optional[bool] = Field(None, description="是否可展开")
    meta_data: Optional[Dict[str, Any]] = Field(None, description="扩展信息")


class NodeResponse(DTO):
    id: int
    owner_kind: OwnerKind
    owner_id: int
    parent_id: Optional[int] = None
    slug: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    depth: int = 0
    path: List[int] = Field(default_factory=list)
    display_order: int = 0
    is_active: bool = True
    is_expandable: bool = True
    meta_data: Optional[Dict[str, Any]] = None
    ver: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TreeNodeRow(DTO):
    """get_tree() 的一行"""
    id: int
    slug: str
    name: str
    parent_id: Optional[int] = None
    depth: int
    path: List[int]
    child_count: int = 0
    item_count: int = 0


# ==================== 内容条目 ====================

class ContentItemResponse(DTO):
    id: int
    node_id: Optional[int] = None
    collection_id: Optional[int] = None
    owner_kind: OwnerKind
    owner_id: int
    item_type: ItemType
    slug: Optional[str] = None
    name: Optional[str] = None
    content: Optional[str] = None
    content_json: Optional[Dict[str, Any]] = None
    trigger_event: Optional[str] = None
    trigger_conditions: Optional[Dict[str, Any]] = None
    property_key: Optional[str] = None
    property_value: Optional[str] = None
    display_order: int = 0
    priority: int = 0
    is_active: bool = True
    version: int = 1
    checksum: Optional[str] = None
    external_index_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class DescendantRow(DTO):
    """get_descendants() 的一行，items 为当前集合视角下可见的条目"""
    id: int
    name: str
    depth: int
    path: List[int]
    items: List[ContentItemResponse] = Field(default_factory=list)


# ==================== 删除 ====================

class DeletionResult(DTO):
    success: bool
    message: str
    policy: Optional[DeletionPolicy] = None
    affected_content_items: int = 0
    affected_children: int = 0
    deleted_node_ids: List[int] = Field(default_factory=list)


# ==================== 模板 ====================

class TemplateBindingResponse(DTO):
    id: int
    collection_id: int
    template_id: int
    template_version: int
    override_node_id: Optional[int] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


class BindingMigration(DTO):
    """migrate_binding() 的结果"""
    binding: TemplateBindingResponse
    from_version: int
    to_version: int
    removed_node_ids: List[int] = Field(default_factory=list)
    added_node_ids: List[int] = Field(default_factory=list)


# ==================== 统计 ====================

class TreeStats(DTO):
    total_nodes: int = 0
    root_nodes: int = 0
    active_nodes: int = 0
    inactive_nodes: int = 0
    deleted_nodes: int = 0
    max_depth: int = 0
    nodes_per_depth: Dict[int, int] = Field(default_factory=dict)
    categorized_items: int = 0
    uncategorized_items: int = 0
