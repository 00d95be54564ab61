"""
Knowledge Hub - 应用主包

多租户知识库服务的核心应用包，包含以下子模块：
- api/        : API 路由和依赖注入
- auth/       : 认证（API Key）与租户边界
- db/         : 数据库连接和会话管理
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- services/   : 业务逻辑服务层（版本库、摄取、审批、访问控制）
- pipeline/   : 文本抽取与切分
- infra/      : 基础设施（Embedding、文件读取、日志）
- middleware/ : 请求追踪

项目架构遵循分层设计：
    API层 → 服务层 → 数据访问层 → 基础设施层
"""
