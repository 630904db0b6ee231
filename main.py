"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import internal as internal_routes
from api.routes import payments as payments_routes
from api.routes import webhooks as webhook_routes
from api.dependencies import shutdown_clients
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import create_tables, engine


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 开发环境可自动建表；生产应使用 Alembic 迁移
    if settings.AUTO_CREATE_TABLES:
        await create_tables()
        logger.info("database_initialized", message="Database tables created")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create, use Alembic migrations (alembic upgrade head)"
        )

    yield

    # 关闭外部客户端与连接池
    await shutdown_clients()
    await engine.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="预订支付服务：Stripe PaymentIntent 编排与 Webhook 对账",
)

# 添加中间件（注意顺序：后添加的在外层、先执行）
# 1. 日志中间件（依赖request_id，最内层）
app.add_middleware(LoggingMiddleware)

# 2. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. Request ID中间件（最外层，CORS 预检响应也带上 request_id）
app.add_middleware(RequestIDMiddleware)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(internal_routes.router)
app.include_router(webhook_routes.router)


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return success_response(
        data={"status": "healthy", "service": settings.PROJECT_NAME, "version": settings.VERSION}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
