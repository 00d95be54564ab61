"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py         : 健康检查接口
- documents.py      : 文档提交、版本历史、审批 / 驳回 / 活动版本切换
- knowledge_base.py : 已发布文章浏览
- tags.py           : 访问标签管理
- retrieve.py       : 片段检索
"""

from fastapi import APIRouter

from app.api.routes import documents, health, knowledge_base, retrieve, tags

# 主路由器，包含所有 API 端点
api_router = APIRouter()

# 注册各子路由，tags 用于 API 文档分组
api_router.include_router(health.router, tags=["health"])
api_router.include_router(documents.router, tags=["documents"])
api_router.include_router(knowledge_base.router, tags=["knowledge-base"])
api_router.include_router(tags.router, tags=["access-tags"])
api_router.include_router(retrieve.router, tags=["retrieve"])
