"""
健康检查接口

用于容器编排系统进行存活探测和就绪探测。
"""

from fastapi import APIRouter

router = APIRouter()


@router.get("/healthz")
async def healthcheck() -> dict:
    """返回 {"status": "ok"} 表示服务正常运行"""
    return {"status": "ok"}
