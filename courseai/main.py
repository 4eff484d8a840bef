"""
FastAPI 应用实例

负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（启动/关闭时的初始化逻辑）
3. 注册所有 API 路由
4. 配置结构化日志、请求追踪与统一错误格式
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courseai.api.routes import api_router
from courseai.config import get_settings
from courseai.exceptions import ChatError
from courseai.infra.logging import get_logger, setup_logging
from courseai.infra.redis_cache import get_redis_cache
from courseai.middleware import RequestTraceMiddleware

# 配置结构化日志
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    - yield 之前：应用启动时执行
    - yield 之后：应用关闭时执行（关闭 Redis 连接）
    """
    logger.info(f"应用启动中... 环境: {settings.environment}")
    cache = get_redis_cache()
    if not cache.available:
        logger.info("Redis 不可用，课程元数据与提供商配置只从请求体读取")

    yield

    await cache.close()
    logger.info("应用已关闭")


app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
)

# 注册中间件（注意顺序：后添加的先执行）
app.add_middleware(RequestTraceMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": code},
        headers=exc.headers,
    )


@app.exception_handler(ChatError)
async def chat_error_handler(_: Request, exc: ChatError):
    # 路由之外抛出的对话错误
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    # 将 Pydantic 校验错误统一映射为 VALIDATION_ERROR
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "code": "VALIDATION_ERROR"},
    )
