"""全局异常处理器

提供 FastAPI 全局异常处理器，自动将异常转换为统一的 JSON 响应格式：

    {
        "status": "error",
        "message": "...",
        "msg_details": [...],
        "data": {},
        "error_code": "DEPTH_EXCEEDED"
    }
"""

import os
import sys
import traceback

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ytree.log import get_logger

from .exceptions import BusinessException

logger = get_logger()

ERROR_STATUS = "error"


def _is_debug() -> bool:
    return os.getenv("DEBUG", "false").lower() == "true"


async def business_exception_handler(
    request: Request,
    exc: BusinessException
) -> JSONResponse:
    """业务异常处理器

    处理所有继承自 BusinessException 的异常（包括全部分类树领域异常）。
    5xx 记 error，其余记 warning。
    """
    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Business exception occurred: {exc.code} - {exc.message}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "error_code": exc.code,
            "status_code": exc.status_code,
            "details": exc.details,
            "extra": exc.extra
        }
    )

    content = {
        "status": ERROR_STATUS,
        "message": exc.message,
        "msg_details": exc.details,
        "data": {}
    }
    if exc.code:
        content["error_code"] = exc.code

    if _is_debug() and exc.extra:
        content["debug_info"] = exc.extra

    return JSONResponse(
        status_code=exc.status_code,
        content=content
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """HTTP 异常处理器"""
    request_id = getattr(request.state, "request_id", "unknown")

    log_level = "warning" if exc.status_code < 500 else "error"
    getattr(logger, log_level)(
        f"HTTP exception: {exc.status_code} - {exc.detail}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": ERROR_STATUS,
            "message": str(exc.detail),
            "msg_details": [],
            "data": {},
            "error_code": f"HTTP_{exc.status_code}"
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """通用异常处理器

    捕获所有未被其他处理器处理的异常，记录完整堆栈信息，
    对外只返回通用的 500 响应。
    """
    request_id = getattr(request.state, "request_id", "unknown")

    exc_type, exc_value, exc_traceback = sys.exc_info()
    tb_lines = traceback.format_exception(exc_type, exc_value, exc_traceback)

    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "traceback": "".join(tb_lines)
        }
    )

    content = {
        "status": ERROR_STATUS,
        "message": "服务器内部错误",
        "msg_details": [],
        "data": {},
        "error_code": "INTERNAL_SERVER_ERROR"
    }
    if _is_debug():
        content["msg_details"] = [
            f"异常类型: {type(exc).__name__}",
            f"异常消息: {str(exc)}"
        ]

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content
    )


def register_exception_handlers(app) -> None:
    """注册所有异常处理器到 FastAPI 应用

    1. BusinessException - 业务异常（含分类树领域异常）
    2. HTTPException - HTTP 异常
    3. Exception - 通用异常（兜底）

    使用示例:
        from fastapi import FastAPI
        from ytree.exceptions import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered successfully")
