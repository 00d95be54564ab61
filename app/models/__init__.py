"""
数据模型层 (ORM Models)

数据模型关系图：
    Tenant (租户)
       │
       ├── TenantMember (成员关系) ── User (用户) ── APIKey (API 密钥)
       │        └── member_access_tags
       │
       ├── AccessTag (访问标签)
       │
       └── Document (文档)
              ├── document_access_tags
              └── DocumentVersion (文档版本)
                     └── Chunk (检索片段)

核心概念：
- Tenant: 租户，多租户隔离的顶层实体
- Document: 逻辑文章，内容以不可变的版本序列存在
- DocumentVersion: 一次提交，经审批（并摄取成功）后才对读者可见
- Chunk: 摄取产物，文本片段 + 向量
"""

from app.models.access_tag import AccessTag, document_access_tags, member_access_tags
from app.models.api_key import APIKey
from app.models.chunk import Chunk
from app.models.document import Document, DocumentStatus, DocumentVersion, IngestionStatus
from app.models.tenant import Tenant
from app.models.user import MemberRole, TenantMember, User

__all__ = [
    "AccessTag",
    "APIKey",
    "Chunk",
    "Document",
    "DocumentStatus",
    "DocumentVersion",
    "IngestionStatus",
    "MemberRole",
    "Tenant",
    "TenantMember",
    "User",
    "document_access_tags",
    "member_access_tags",
]
