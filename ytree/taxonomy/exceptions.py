"""
分类树模块 - 异常定义

异常层次结构:
    BusinessException
    ├── ResourceNotFoundException (404)
    │   ├── NodeNotFound
    │   ├── ParentNotFound
    │   ├── OwnerNotFound
    │   ├── TemplateNotFound
    │   ├── BindingNotFound
    │   └── ContentItemNotFound
    ├── ResourceConflictException (409)
    │   ├── DuplicateSibling
    │   ├── DeletionBlocked
    │   ├── TemplateAlreadyBound
    │   └── TemplateNodeInUse
    ├── ValidationException (422)
    │   ├── DepthExceeded
    │   ├── InvalidOwnerScope
    │   └── CycleDetected
    └── TreeIntegrityError (500)

所有检查都在提交前完成，抛出后由事务上下文整体回滚。
"""

from typing import Optional

from fastapi import status

from ytree.exceptions import (
    BusinessException,
    ErrorCode,
    ResourceConflictException,
    ResourceNotFoundException,
    ValidationException,
)


# ==================== 404 ====================

class NodeNotFound(ResourceNotFoundException):
    """节点不存在或已删除"""

    def __init__(self, node_id: int, message: Optional[str] = None):
        self.node_id = node_id
        super().__init__(
            message or f"节点不存在或已删除: {node_id}",
            code=ErrorCode.NODE_NOT_FOUND,
            node_id=node_id,
        )


class ParentNotFound(ResourceNotFoundException):
    """父节点不存在、已删除或不在同一所有者范围"""

    def __init__(self, parent_id: int, message: Optional[str] = None):
        self.parent_id = parent_id
        super().__init__(
            message or f"父节点不存在或不在同一范围内: {parent_id}",
            code=ErrorCode.PARENT_NOT_FOUND,
            parent_id=parent_id,
        )


class OwnerNotFound(ResourceNotFoundException):
    """所有者（集合或模板）不存在"""

    def __init__(self, kind: str, owner_id: int):
        super().__init__(
            f"所有者不存在: {kind}#{owner_id}",
            code=ErrorCode.OWNER_NOT_FOUND,
            owner_kind=kind,
            owner_id=owner_id,
        )


class TemplateNotFound(ResourceNotFoundException):
    def __init__(self, template_id):
        super().__init__(
            f"模板不存在: {template_id}",
            code=ErrorCode.TEMPLATE_NOT_FOUND,
            template_id=template_id,
        )


class BindingNotFound(ResourceNotFoundException):
    def __init__(self, collection_id: int, template_id: int):
        super().__init__(
            f"集合 {collection_id} 未绑定模板 {template_id}",
            code=ErrorCode.BINDING_NOT_FOUND,
            collection_id=collection_id,
            template_id=template_id,
        )


class ContentItemNotFound(ResourceNotFoundException):
    def __init__(self, item_id: int):
        super().__init__(
            f"内容条目不存在或已删除: {item_id}",
            code=ErrorCode.CONTENT_ITEM_NOT_FOUND,
            item_id=item_id,
        )


# ==================== 409 ====================

class DuplicateSibling(ResourceConflictException):
    """同一父节点、同一所有者范围下已存在相同 slug 的未删除节点"""

    def __init__(self, slug: str, parent_id: Optional[int] = None):
        self.slug = slug
        self.parent_id = parent_id
        where = f"父节点 {parent_id} 下" if parent_id is not None else "根级"
        super().__init__(
            f"{where}已存在 slug 为 '{slug}' 的节点",
            code=ErrorCode.DUPLICATE_SIBLING,
            slug=slug,
            parent_id=parent_id,
        )


class DeletionBlocked(ResourceConflictException):
    """block 策略下节点仍有子节点或内容条目"""

    def __init__(self, node_id: int, child_count: int, content_count: int):
        self.node_id = node_id
        self.child_count = child_count
        self.content_count = content_count
        super().__init__(
            f"节点下还有 {child_count} 个子节点和 {content_count} 个内容条目，"
            f"请先移走或改用 reassign / cascade 策略",
            code=ErrorCode.DELETION_BLOCKED,
            node_id=node_id,
            child_count=child_count,
            content_count=content_count,
        )

    def to_result(self):
        """转换为 success=False 的删除结果"""
        from .schemas import DeletionResult
        return DeletionResult(
            success=False,
            message=self.message,
            affected_content_items=self.content_count,
            affected_children=self.child_count,
        )


class TemplateAlreadyBound(ResourceConflictException):
    def __init__(self, collection_id: int, template_id: int):
        super().__init__(
            f"集合 {collection_id} 已绑定模板 {template_id}",
            code=ErrorCode.TEMPLATE_ALREADY_BOUND,
            collection_id=collection_id,
            template_id=template_id,
        )


class TemplateNodeInUse(ResourceConflictException):
    """模板节点被有效绑定引用为覆盖节点"""

    def __init__(self, node_id: int, collection_ids):
        super().__init__(
            f"模板节点 {node_id} 正被集合 {sorted(collection_ids)} 的绑定引用",
            code=ErrorCode.TEMPLATE_NODE_IN_USE,
            node_id=node_id,
            collection_ids=sorted(collection_ids),
        )


# ==================== 422 ====================

class DepthExceeded(ValidationException):
    """操作后节点（或其最深子孙）深度超过上限"""

    def __init__(self, depth: int, max_depth: int):
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"节点深度 {depth} 超过上限 {max_depth}",
            code=ErrorCode.DEPTH_EXCEEDED,
            depth=depth,
            max_depth=max_depth,
        )


class InvalidOwnerScope(ValidationException):
    """所有者范围不合法（集合与模板同时提供或都未提供、内容条目的集合与节点范围不符）"""

    def __init__(self, message: str = "所有者范围不合法", **extra):
        super().__init__(message, code=ErrorCode.INVALID_OWNER_SCOPE, **extra)


class CycleDetected(ValidationException):
    """新父节点是节点自身或其子孙"""

    def __init__(self, node_id: int, new_parent_id: int):
        super().__init__(
            f"不能将节点 {node_id} 移动到自身或其子孙 {new_parent_id} 下",
            code=ErrorCode.CYCLE_DETECTED,
            node_id=node_id,
            new_parent_id=new_parent_id,
        )


# ==================== 500 ====================

class TreeIntegrityError(BusinessException):
    """读取时发现路径 / 深度与结构不一致（只报告，不修复）"""

    def __init__(self, node_id: int, reason: str):
        self.node_id = node_id
        super().__init__(
            f"节点 {node_id} 的树结构数据不一致: {reason}",
            code=ErrorCode.TREE_INTEGRITY_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            node_id=node_id,
            reason=reason,
        )
