"""
Jarvis Knowledge Portal FastAPI 应用

创建知识管理 API 服务。
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import PortalConfig
from ..store import KnowledgeStore
from .service import PortalService
from .routes import create_portal_routers

logger = logging.getLogger(__name__)


def _format_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ())[1:])
        parts.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_portal_app(
    config: PortalConfig = None,
    store: Optional[KnowledgeStore] = None,
    title: str = "Jarvis Knowledge Portal",
) -> FastAPI:
    """
    创建 Portal FastAPI 应用

    Args:
        config: Portal 配置
        store: 预先创建的知识存储（可选，默认按配置创建）
        title: API 标题

    Returns:
        FastAPI 应用实例

    示例:
        from jarvis_knowledge.portal import create_portal_app
        from jarvis_knowledge.config import PortalConfig

        app = create_portal_app(PortalConfig.for_development())

        import uvicorn
        uvicorn.run(app, host="127.0.0.1", port=8082)
    """
    config = config or PortalConfig.for_development()
    service = PortalService(config, store=store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        await service.initialize()
        logger.info("Portal application started")

        yield

        await service.shutdown()
        logger.info("Portal application shutdown")

    app = FastAPI(
        title=title,
        description="Jarvis 知识条目的存储、查询与批量导入",
        version=config.version,
        lifespan=lifespan,
    )

    if config.server.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # 请求体解析失败统一返回 400 信封
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = _format_validation_error(exc)
        logger.error(f"[{request.url.path}] invalid request: {message}")
        return JSONResponse({"ok": False, "error": message}, status_code=400)

    routers = create_portal_routers(service)
    for router in routers.values():
        app.include_router(router)

    app.state.service = service
    app.state.config = config

    return app


def main():
    """命令行入口"""
    import argparse

    parser = argparse.ArgumentParser(description="Jarvis Knowledge Portal Server")
    parser.add_argument("--host", default="0.0.0.0", help="监听地址")
    parser.add_argument("--port", type=int, default=8082, help="监听端口")
    parser.add_argument("--workers", type=int, default=1, help="工作进程数")
    parser.add_argument("--reload", action="store_true", help="开发模式自动重载")
    parser.add_argument("--config", help="配置文件路径")
    parser.add_argument("--store", default="sqlite", choices=["sqlite", "memory"])
    parser.add_argument("--sqlite-path", default="jarvis_knowledge.db")
    parser.add_argument("--env", default="development", choices=["development", "staging", "production"])

    args = parser.parse_args()

    if args.config:
        from ..config import load_config
        config = load_config(args.config)
    else:
        from ..config import ServerConfig, StoreConfig

        config = PortalConfig(
            server=ServerConfig(
                host=args.host,
                port=args.port,
                workers=args.workers,
                reload=args.reload,
            ),
            store=StoreConfig(
                type=args.store,
                sqlite_path=args.sqlite_path,
            ),
            environment=args.env,
        )

    logging.basicConfig(
        level=config.server.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_portal_app(config)

    import uvicorn

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        workers=config.server.workers if not config.server.reload else 1,
        log_level=config.server.log_level,
    )


if __name__ == "__main__":
    main()
