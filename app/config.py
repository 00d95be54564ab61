"""
应用配置管理

使用 pydantic-settings 实现类型安全的配置管理：
- 支持从环境变量读取配置
- 支持从 .env 文件读取配置
- 提供默认值，确保开发环境开箱即用

配置优先级（从高到低）：
    1. 环境变量
    2. .env 文件
    3. 代码中的默认值

使用示例：
    from app.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    全局配置类

    所有配置项都可以通过环境变量覆盖，环境变量名与字段名相同（不区分大小写）。
    例如：DATABASE_URL 环境变量会覆盖 database_url 字段。
    """

    # ==================== 应用基础配置 ====================
    app_name: str = "Knowledge Hub"          # 应用名称，显示在 API 文档中
    environment: str = "dev"                 # 运行环境：dev/staging/prod
    log_level: str = "INFO"                  # 日志级别：DEBUG/INFO/WARNING/ERROR
    log_json: bool | None = None             # 日志格式：True=JSON，None=自动（prod用JSON）
    timezone: str = "UTC"                    # 处理日志中的时间戳时区

    # ==================== 数据库配置 ====================
    # 格式：postgresql+asyncpg://用户名:密码@主机:端口/数据库名
    # 测试环境可使用 sqlite+aiosqlite:///./test.db
    database_url: str = "postgresql+asyncpg://kb:kb@localhost:5432/knowledge_hub"

    # ==================== API 认证配置 ====================
    api_key_prefix: str = "kh_sk_"           # API Key 前缀，用于识别和验证

    # ==================== Embedding 配置（向量化模型） ====================
    # provider: openai / ollama / compatible / hash
    # hash 为确定性哈希向量，无语义，仅用于开发和测试
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536
    embedding_batch_size: int = 100

    # Ollama（本地部署）
    ollama_base_url: str = "http://localhost:11434"

    # OpenAI
    openai_api_key: str | None = None
    openai_api_base: str | None = None

    # 其他 OpenAI 兼容服务（如 SiliconFlow / DashScope）
    compatible_api_key: str | None = None
    compatible_api_base: str | None = None

    # ==================== 切分配置 ====================
    chunk_size: int = 1000      # 单个片段最大字符数
    chunk_overlap: int = 200    # 相邻片段重叠字符数

    # ==================== 摄取配置 ====================
    ingestion_timeout_seconds: float = 300.0   # 单次摄取（抽取 + 向量化）超时
    ingestion_lease_seconds: int = 900         # 处理中标记的租约，超过即视为失效可被接管
    file_fetch_timeout_seconds: float = 30.0   # 拉取源文件超时
    max_file_size_mb: int = 10                 # 单个文件大小上限
    auto_approve_admin_uploads: bool = True    # 管理员上传后是否立即摄取并审批

    # ==================== 源文件位置 ====================
    # file:// 引用必须解析到存储目录之内；http(s) 只允许列表中的主机
    # 列表类配置通过 JSON 设置，例如 FILE_ALLOWED_HOSTS='["files.example.com"]'
    file_storage_root: str = "./storage"
    file_allowed_hosts: list[str] = []

    model_config = {
        "env_file": ".env",           # 从 .env 文件加载配置
        "env_file_encoding": "utf-8",  # .env 文件编码
        "extra": "ignore",
    }

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def get_embedding_config(self) -> dict:
        """获取 Embedding 配置（provider, model, api_key, base_url）"""
        provider = self.embedding_provider.lower()
        model = self.embedding_model

        if provider == "ollama":
            return {
                "provider": "ollama",
                "base_url": self.ollama_base_url,
                "model": model,
            }
        elif provider == "openai":
            return {
                "provider": "openai",
                "api_key": self.openai_api_key,
                "base_url": self.openai_api_base,
                "model": model,
            }
        elif provider == "compatible":
            return {
                "provider": "compatible",
                "api_key": self.compatible_api_key,
                "base_url": self.compatible_api_base,
                "model": model,
            }
        elif provider == "hash":
            return {
                "provider": "hash",
                "model": "hash",
                "dim": self.embedding_dim,
            }
        else:
            raise ValueError(f"未知的 Embedding 提供商: {provider}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    获取配置单例

    使用 @lru_cache 装饰器缓存配置实例，确保整个应用只创建一次 Settings 对象。

    Returns:
        Settings: 全局配置实例
    """
    return Settings()
