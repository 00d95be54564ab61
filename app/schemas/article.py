"""知识库浏览的响应模型"""

from datetime import datetime

from pydantic import BaseModel


class CategoryRef(BaseModel):
    id: str
    name: str


class CategoryCount(CategoryRef):
    count: int


class ArticleResponse(BaseModel):
    """已发布文章（文档 + 活动版本）"""
    id: str
    title: str
    description: str | None = None
    categories: list[CategoryRef]
    version_id: str
    version: int
    file_url: str
    file_name: str
    file_size: int
    mime_type: str
    submitted_by: str | None = None
    created_at: datetime
    updated_at: datetime
    approved_at: datetime | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ArticleListResponse(BaseModel):
    articles: list[ArticleResponse]
    categories: list[CategoryCount]
    pagination: Pagination
