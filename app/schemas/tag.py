"""访问标签相关的请求/响应模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class TagCreate(BaseModel):
    name: str = Field(..., max_length=100, description="标签名称，租户内唯一")


class TagGrantRequest(BaseModel):
    user_id: str = Field(..., description="被授予/收回标签的用户 ID")


class TagResponse(BaseModel):
    id: str
    name: str
    created_at: datetime
    user_count: int = 0
    document_count: int = 0


class TagListResponse(BaseModel):
    tags: list[TagResponse]
