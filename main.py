"""
Knowledge Hub - 启动入口

运行方式：
    - 直接执行：python main.py
    - 或者使用：uvicorn app.main:app --reload

服务启动后可以访问：
    - API 文档：http://localhost:8000/docs
    - 健康检查：http://localhost:8000/healthz
"""

import uvicorn

from app.config import get_settings


def main() -> None:
    """使用 uvicorn 启动 FastAPI 服务，开发环境开启自动重载"""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment in ("dev", "development"),
    )


if __name__ == "__main__":
    main()
