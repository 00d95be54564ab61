"""检索接口的请求/响应模型"""

from pydantic import BaseModel, Field


class RetrieveRequest(BaseModel):
    query: str = Field(..., min_length=1, description="检索问题")
    top_k: int = Field(default=5, ge=1, le=50, description="返回片段数量")


class ChunkHit(BaseModel):
    chunk_id: str
    document_id: str
    document_name: str
    version_id: str
    ordinal: int
    text: str
    score: float


class RetrieveResponse(BaseModel):
    results: list[ChunkHit]
