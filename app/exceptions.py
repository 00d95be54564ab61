"""
业务异常定义

所有异常都可在请求边界恢复：每个异常携带错误码和 HTTP 状态码，
由 app.main 中的异常处理器统一映射为 {"detail", "code"} 响应。

分类：
- 权限类：AuthorizationError（403）
- 资源类：NotFoundError（404）
- 状态类：InvalidStateError / InvalidRequestError（400）
- 冲突类：ConflictError / AlreadyInProgressError（409）
- 摄取类：IngestionError 及其子类（500），文档保持 PENDING
"""


class KnowledgeBaseError(Exception):
    """业务异常基类"""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class AuthorizationError(KnowledgeBaseError):
    """租户不匹配、角色不足或无成员关系"""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(KnowledgeBaseError):
    """实体不存在或不属于当前租户"""

    code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(KnowledgeBaseError):
    """非法的状态迁移"""

    code = "INVALID_STATE"
    status_code = 400


class InvalidRequestError(KnowledgeBaseError):
    """请求参数校验失败（在任何状态修改之前抛出）"""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidFileLocationError(InvalidRequestError):
    """源文件位置不在存储目录内，或主机不在允许列表中"""

    code = "INVALID_FILE_LOCATION"


class ConflictError(KnowledgeBaseError):
    """文档已有待审核版本"""

    code = "CONFLICT"
    status_code = 409


class AlreadyInProgressError(KnowledgeBaseError):
    """同一版本的摄取正在进行中"""

    code = "ALREADY_IN_PROGRESS"
    status_code = 409


class IngestionError(KnowledgeBaseError):
    """文档摄取错误（仅终止本次摄取，版本保持 PENDING）"""

    code = "INGESTION_FAILED"
    status_code = 500


class UnsupportedFormatError(IngestionError):
    """不支持的 MIME 类型"""

    code = "UNSUPPORTED_FORMAT"


class ExtractionFailure(IngestionError):
    """文本抽取失败"""

    code = "EXTRACTION_FAILED"


class EmptyContentError(IngestionError):
    """抽取结果为空或仅含空白"""

    code = "EMPTY_CONTENT"


class EmbeddingFailure(IngestionError):
    """向量化失败"""

    code = "EMBEDDING_FAILED"


class IngestionTimeoutError(IngestionError):
    """摄取超时或被取消"""

    code = "INGESTION_TIMEOUT"
