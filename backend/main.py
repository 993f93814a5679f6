"""
DropCode - FastAPI Application Entry Point

启动命令:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dropcode.api import register_exception_handlers
from dropcode.core import settings, setup_logging
from dropcode.middleware import build_concurrency_middleware, trace_middleware
from dropcode.services import ServiceContainer

# 设置日志
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：构造服务容器并启停后台清理任务"""
    from dropcode.core.logging import logger

    logger.info(
        "application_startup",
        extra={"project": settings.PROJECT_NAME, "environment": settings.ENVIRONMENT},
    )
    if getattr(app.state, "container", None) is None:
        app.state.container = ServiceContainer()
    container: ServiceContainer = app.state.container
    if not container.config.SECRET_KEY:
        logger.warning("secret_key_missing: download links are disabled until SECRET_KEY is set")

    await container.start()
    try:
        yield
    finally:
        await container.stop()
        logger.info("application_shutdown")


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """创建 FastAPI 应用；传入 container 时直接使用（测试注入替身）"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container

    # 全局中间件：顺序为追踪 -> 背压 -> CORS
    app.middleware("http")(trace_middleware)
    app.middleware("http")(build_concurrency_middleware())

    # CORS 配置
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", settings.TRACE_ID_HEADER],
    )

    register_exception_handlers(app)
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """注册所有 API 路由"""
    from dropcode.api import download_router, files_router, system_router, uploads_router

    api_prefix = settings.API_PREFIX

    app.include_router(uploads_router, prefix=api_prefix)
    app.include_router(files_router, prefix=api_prefix)
    app.include_router(download_router, prefix=api_prefix)
    app.include_router(system_router, prefix=api_prefix)


# 创建应用实例
app = create_app()


def run():
    """脚本入口点"""
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
