"""
请求追踪中间件

为每个请求生成唯一 ID，支持全链路追踪。

功能：
- 生成或接收 X-Request-ID
- 在响应头中返回 request_id 和耗时
- 每个请求开始时重置日志上下文（request_id / tenant_id / user_id）
- 记录请求日志
"""

import re
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.infra.logging import (
    RequestTimer,
    get_logger,
    set_request_id,
    set_tenant_id,
    set_user_id,
)

logger = get_logger(__name__)

# 健康检查等高频低价值请求不记录成功日志
SKIP_PATHS = ("/healthz", "/readyz", "/favicon.ico")

# 轮询请求：GET .../documents/{id}/versions（前端轮询后台审批结果）
POLLING_PATTERN = re.compile(r"^/v1/tenants/[^/]+/documents/[^/]+/versions$")


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """
    请求追踪中间件

    - 从 X-Request-ID 头获取请求 ID，或自动生成
    - 在响应中返回 X-Request-ID 和 X-Response-Time
    - 记录请求日志（路径、方法、耗时、状态码）
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        # 租户和用户在认证依赖中设置
        set_tenant_id(None)
        set_user_id(None)

        timer = RequestTimer()
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            metrics = timer.get_metrics()
            logger.error(
                f"{request.method} {path} - 500 - {metrics['total_ms']:.0f}ms",
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": metrics["total_ms"],
                    "error": str(e),
                },
            )
            raise

        metrics = timer.get_metrics()
        log_extra = {
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": metrics["total_ms"],
        }
        message = f"{request.method} {path} - {response.status_code} - {metrics['total_ms']:.0f}ms"

        if response.status_code >= 500:
            logger.error(message, extra=log_extra)
        elif response.status_code >= 400:
            logger.warning(message, extra=log_extra)
        else:
            is_polling = request.method == "GET" and POLLING_PATTERN.match(path)
            if path not in SKIP_PATHS and not is_polling:
                logger.info(message, extra=log_extra)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{metrics['total_ms']:.0f}ms"

        return response
