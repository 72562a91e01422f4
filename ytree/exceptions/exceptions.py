"""业务异常类定义

定义引擎使用的业务异常类体系。
领域异常（ytree.taxonomy.exceptions）都继承自这里的基类，
因此同一个 FastAPI 处理器即可把它们转换为统一的 JSON 响应。
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import status


class ErrorCode(str, Enum):
    """错误代码枚举

    继承自 str，可以直接作为字符串使用。

    使用示例:
        raise BusinessException("操作失败", code=ErrorCode.OPERATION_FAILED)

        if exc.code == ErrorCode.DEPTH_EXCEEDED:
            ...
    """

    # ==================== 通用错误 ====================
    BUSINESS_ERROR = "BUSINESS_ERROR"
    OPERATION_FAILED = "OPERATION_FAILED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # ==================== 资源相关 (404) ====================
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    OWNER_NOT_FOUND = "OWNER_NOT_FOUND"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    BINDING_NOT_FOUND = "BINDING_NOT_FOUND"
    CONTENT_ITEM_NOT_FOUND = "CONTENT_ITEM_NOT_FOUND"

    # ==================== 冲突相关 (409) ====================
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_SIBLING = "DUPLICATE_SIBLING"
    DELETION_BLOCKED = "DELETION_BLOCKED"
    TEMPLATE_ALREADY_BOUND = "TEMPLATE_ALREADY_BOUND"
    TEMPLATE_NODE_IN_USE = "TEMPLATE_NODE_IN_USE"
    VERSION_CONFLICT = "VERSION_CONFLICT"

    # ==================== 验证相关 (422) ====================
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    INVALID_OWNER_SCOPE = "INVALID_OWNER_SCOPE"
    CYCLE_DETECTED = "CYCLE_DETECTED"

    # ==================== 数据完整性 (500) ====================
    TREE_INTEGRITY_ERROR = "TREE_INTEGRITY_ERROR"


# 类型别名，支持枚举和字符串
ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """业务异常基类

    所有业务异常都应该继承此类。

    属性:
        message: 错误消息（面向用户）
        code: 错误代码（用于程序判断，支持 ErrorCode 枚举或字符串）
        status_code: HTTP 状态码
        details: 详细错误信息列表
        extra: 额外的上下文信息（计数、深度、冲突的 slug 等）

    使用示例:
        raise BusinessException("操作失败", code=ErrorCode.OPERATION_FAILED)

        raise BusinessException(
            message="节点移动失败",
            code=ErrorCode.OPERATION_FAILED,
            node_id=12, target_parent_id=3
        )
    """

    def __init__(
        self,
        message: str,
        code: ErrorCodeType = ErrorCode.BUSINESS_ERROR,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or []
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            # 深拷贝，避免调用方修改返回值反向污染异常对象
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra)
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )


class ResourceNotFoundException(BusinessException):
    """资源不存在异常

    使用示例:
        raise ResourceNotFoundException("节点不存在", resource_type="CategoryNode", resource_id=123)
    """

    def __init__(
        self,
        message: str = "资源不存在",
        code: ErrorCodeType = ErrorCode.RESOURCE_NOT_FOUND,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            **extra
        )


class ResourceConflictException(BusinessException):
    """资源冲突异常

    使用示例:
        raise ResourceConflictException("数据已被其他用户修改", code=ErrorCode.VERSION_CONFLICT)
    """

    def __init__(
        self,
        message: str = "资源冲突",
        code: ErrorCodeType = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            **extra
        )


class ValidationException(BusinessException):
    """数据验证异常

    使用示例:
        raise ValidationException("slug 不能为空", field="slug")
    """

    def __init__(
        self,
        message: str = "数据验证失败",
        code: ErrorCodeType = ErrorCode.VALIDATION_ERROR,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            **extra
        )


class Err:
    """异常快捷创建类

    使用示例:
        from ytree.exceptions import Err

        raise Err.not_found("模板不存在", resource_type="Template", resource_id=3)
        raise Err.conflict("slug 已存在", field="slug", value="prayer")
        raise Err.invalid("参数错误", field="mode")
        raise Err.fail("操作失败")
    """

    @staticmethod
    def not_found(message: str = "资源不存在", **kwargs) -> ResourceNotFoundException:
        """资源不存在 (404)"""
        return ResourceNotFoundException(message, **kwargs)

    @staticmethod
    def conflict(message: str = "资源冲突", **kwargs) -> ResourceConflictException:
        """资源冲突 (409)"""
        return ResourceConflictException(message, **kwargs)

    @staticmethod
    def invalid(message: str = "数据验证失败", **kwargs) -> ValidationException:
        """数据验证失败 (422)"""
        return ValidationException(message, **kwargs)

    @staticmethod
    def fail(message: str = "操作失败", **kwargs) -> BusinessException:
        """通用业务错误 (400)"""
        kwargs.setdefault("code", ErrorCode.OPERATION_FAILED)
        return BusinessException(message, **kwargs)
