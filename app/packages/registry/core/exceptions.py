"""异常处理模块：定义统一的业务异常与响应格式。

命名空间解析、鉴权与批次状态机的所有失败都以 ``AppException`` 子类抛出，
``data`` 中携带组织/数据集 slug 或批次 token，便于调用方记录与排查。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.registry.core.logger import get_request_id, logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data

    def __str__(self) -> str:
        return f"{self.status_code}: {self.detail}"


class BadRequestException(AppException):
    """标识缺失或格式非法。"""

    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_400_BAD_REQUEST, data)


class UnauthenticatedException(AppException):
    """无法识别当前身份，且不满足管理员放行条件。"""

    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_401_UNAUTHORIZED, data)


class UnauthorizedException(AppException):
    """已认证但无权访问目标组织。"""

    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_403_FORBIDDEN, data)


class NotFoundException(AppException):
    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_404_NOT_FOUND, data)


class ConflictException(AppException):
    """批次非法状态迁移、重复 slug 等冲突。"""

    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, data)


class ObjectStoreException(AppException):
    """对象存储调用失败，原样上报，不做重试。"""

    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_502_BAD_GATEWAY, data)


class NotSupportedException(AppException):
    """刻意未支持的操作（例如绕过批次直接写对象），必须显式失败。"""

    def __init__(self, msg: str, data: Optional[dict[str, Any]] = None) -> None:
        super().__init__(msg, status.HTTP_501_NOT_IMPLEMENTED, data)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = {
        "msg": "服务器内部错误",
        "data": {"request_id": get_request_id()},
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
