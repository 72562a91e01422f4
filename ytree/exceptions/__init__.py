"""异常模块

使用示例:
    from ytree.exceptions import BusinessException, ErrorCode, Err, register_exception_handlers
"""

from .exceptions import (
    ErrorCode,
    ErrorCodeType,
    BusinessException,
    ResourceNotFoundException,
    ResourceConflictException,
    ValidationException,
    Err,
)
from .handlers import (
    business_exception_handler,
    http_exception_handler,
    general_exception_handler,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "ResourceNotFoundException",
    "ResourceConflictException",
    "ValidationException",
    "Err",
    "business_exception_handler",
    "http_exception_handler",
    "general_exception_handler",
    "register_exception_handlers",
]
