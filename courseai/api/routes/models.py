"""
模型提供商接口

GET /api/models?project_name=xxx

返回项目的全部提供商配置：未配置的提供商补全为占位项，模型列表按内置目录 / Ollama 服务器刷新，密钥字段置空。
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from courseai.infra.redis_cache import get_redis_cache
from courseai.services.provider_models import list_provider_models

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/models")
async def list_models(project_name: str | None = Query(default=None)) -> dict:
    """获取项目的模型提供商列表"""
    if not project_name:
        raise HTTPException(
            status_code=400,
            detail={"code": "MISSING_PROJECT_NAME", "detail": "Missing project_name query parameter"},
        )

    providers = await get_redis_cache().get_llm_providers(project_name)
    logger.debug(f"项目 {project_name} 已启用提供商: {[p.provider.value for p in providers.enabled()]}")
    providers = await list_provider_models(providers)
    return providers.masked().model_dump(mode="json", by_alias=True)
