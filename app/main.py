"""
FastAPI 应用实例

负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（启动时建表、恢复被中断的摄取）
3. 注册所有 API 路由
4. 统一业务异常的响应格式
5. 配置结构化日志和请求追踪
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.routes import api_router
from app.config import get_settings
from app.db.session import SessionLocal, init_models
from app.exceptions import IngestionError, KnowledgeBaseError
from app.infra.logging import get_logger, setup_logging
from app.middleware import RequestTraceMiddleware
from app.services.ingestion import recover_interrupted_versions

# 配置结构化日志
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


async def _recover_interrupted_ingestions():
    """
    服务重启时，ingestion_status 为 processing 的版本是被中断的摄取。
    标记为 interrupted 并清理未审批的片段，管理员可以重新审批。
    """
    try:
        async with SessionLocal() as session:
            await recover_interrupted_versions(session)
    except SQLAlchemyError as e:
        # 表还不存在（首次启动且未迁移）
        logger.debug(f"恢复中断摄取时出错（可能是首次启动）: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    注意：
        - 开发/测试环境：使用 init_models() 自动创建表
        - 生产环境：使用 Alembic 进行数据库迁移
    """
    logger.info(f"应用启动中... 环境: {settings.environment}")

    if settings.environment in ("dev", "development", "test"):
        await init_models()
        logger.info("数据库表初始化完成（开发模式）")
    else:
        logger.info("跳过自动建表，请使用 Alembic 迁移")

    await _recover_interrupted_ingestions()

    yield


app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
)

# 注册中间件（注意顺序：后添加的先执行）
app.add_middleware(RequestTraceMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(KnowledgeBaseError)
async def knowledge_base_exception_handler(_: Request, exc: KnowledgeBaseError):
    """
    业务异常 → {"detail", "code"}

    摄取失败额外返回 error / details，明确告知版本没有被审批：
    {
        "detail": "No text content could be extracted from the file",
        "code": "EMPTY_CONTENT",
        "error": "Failed to process document content. Version was not approved.",
        "details": "No text content could be extracted from the file"
    }
    """
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, IngestionError):
        content["error"] = "Failed to process document content. Version was not approved."
        content["details"] = exc.message
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": code},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "code": "VALIDATION_ERROR"},
    )
