"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py : 健康检查接口
- chat.py   : 对话接口（构建 prompt + 路由到模型提供商）
- models.py : 项目可用的模型提供商列表
"""

from fastapi import APIRouter

from courseai.api.routes import chat, health, models

# 主路由器，包含所有 API 端点
api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(chat.router, tags=["chat"])
api_router.include_router(models.router, tags=["models"])
