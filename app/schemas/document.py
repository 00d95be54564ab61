"""文档与版本相关的请求/响应模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class FileReference(BaseModel):
    """已存储源文件的引用（允许列表中的 http(s):// 主机，或存储目录内的 file://）"""
    url: str = Field(..., min_length=1, description="源文件地址")
    original_name: str = Field(..., min_length=1, max_length=255, description="原始文件名")
    mime_type: str = Field(..., min_length=1, max_length=255, description="声明的 MIME 类型")
    size: int = Field(default=0, ge=0, description="文件大小（字节）")


class DocumentSubmitRequest(BaseModel):
    """提交新文档"""
    name: str = Field(..., max_length=255, description="文档标题")
    description: str | None = Field(default=None, description="文档描述，摄取时写入元数据前缀")
    file: FileReference
    access_tag_ids: list[str] = Field(default_factory=list, description="访问标签，为空表示租户内全员可见")
    change_notes: str | None = Field(default=None, description="版本说明")


class VersionSubmitRequest(BaseModel):
    """对已有文档提交新版本"""
    file: FileReference
    change_notes: str | None = Field(default=None, description="版本说明")


class RejectRequest(BaseModel):
    """驳回请求（原因在服务层校验，去除空白后不能为空）"""
    reason: str = Field(default="", description="驳回原因")


class VersionResponse(BaseModel):
    """版本响应"""
    id: str
    document_id: str
    version_number: int
    status: str
    original_name: str
    file_url: str
    file_size: int
    mime_type: str
    change_notes: str | None = None
    uploaded_by: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    rejected_at: datetime | None = None
    ingestion_status: str
    ingestion_error: str | None = None
    created_at: datetime
    is_active: bool = False

    class Config:
        from_attributes = True


class DocumentResponse(BaseModel):
    """文档响应"""
    id: str
    name: str
    description: str | None = None
    mime_type: str
    status: str
    active_version_id: str | None = None
    current_version: int
    submitted_by: str | None = None
    created_at: datetime
    updated_at: datetime
    latest_version: VersionResponse | None = None

    class Config:
        from_attributes = True


class DocumentListResponse(BaseModel):
    """文档列表响应"""
    items: list[DocumentResponse]
    total: int
    page: int
    limit: int
    pages: int


class VersionListResponse(BaseModel):
    """版本历史响应（版本号倒序）"""
    document_id: str
    document_name: str
    current_version: int
    active_version_id: str | None = None
    versions: list[VersionResponse]


class ApprovalErrorInfo(BaseModel):
    code: str
    detail: str


class SubmitResponse(BaseModel):
    """
    提交响应

    管理员上传时 auto_approved 表示是否已自动审批；
    失败时 approval_error 给出原因，版本保持 PENDING。
    """
    document_id: str
    version: VersionResponse
    auto_approved: bool = False
    approval_error: ApprovalErrorInfo | None = None


class ApproveResponse(BaseModel):
    """审批成功响应"""
    message: str
    version: VersionResponse
    chunk_count: int


class ApprovalAcceptedResponse(BaseModel):
    """后台审批已受理（202）"""
    message: str
    version_id: str
    ingestion_status: str
