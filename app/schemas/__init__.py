"""
数据模式层 (Schemas)

使用 Pydantic 定义 API 的请求和响应模型：
- 自动数据验证
- 自动生成 OpenAPI 文档
- 类型安全的序列化/反序列化
"""

from app.schemas.article import ArticleListResponse, ArticleResponse, CategoryCount, CategoryRef, Pagination
from app.schemas.document import (
    ApprovalAcceptedResponse,
    ApprovalErrorInfo,
    ApproveResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentSubmitRequest,
    FileReference,
    RejectRequest,
    SubmitResponse,
    VersionListResponse,
    VersionResponse,
    VersionSubmitRequest,
)
from app.schemas.retrieve import ChunkHit, RetrieveRequest, RetrieveResponse
from app.schemas.tag import TagCreate, TagGrantRequest, TagListResponse, TagResponse

__all__ = [
    "ApprovalAcceptedResponse",
    "ApprovalErrorInfo",
    "ApproveResponse",
    "ArticleListResponse",
    "ArticleResponse",
    "CategoryCount",
    "CategoryRef",
    "ChunkHit",
    "DocumentListResponse",
    "DocumentResponse",
    "DocumentSubmitRequest",
    "FileReference",
    "Pagination",
    "RejectRequest",
    "RetrieveRequest",
    "RetrieveResponse",
    "SubmitResponse",
    "TagCreate",
    "TagGrantRequest",
    "TagListResponse",
    "TagResponse",
    "VersionListResponse",
    "VersionResponse",
    "VersionSubmitRequest",
]
