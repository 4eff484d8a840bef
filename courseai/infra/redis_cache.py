"""
Redis 元数据存储

读取前端维护的课程元数据与模型提供商配置：
- 课程元数据：hash `course_metadatas`，field 为课程名，value 为 JSON
- 提供商配置：key `{project}-llms`，value 为 JSON

Redis 未配置或不可用时自动降级（返回 None / 空配置），不影响对话主流程。
"""

import json
import logging
from functools import lru_cache

import redis.asyncio as aioredis
from pydantic import ValidationError

from courseai.config import get_settings
from courseai.schemas.chat import CourseMetadata
from courseai.schemas.providers import LLMProviders

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Redis 客户端封装

    如果 Redis 未配置或连接失败，available 为 False，所有读取返回空结果。
    """

    def __init__(self):
        self.settings = get_settings()
        self._client = None
        self._available = False
        self._init_client()

    def _init_client(self) -> None:
        """初始化 Redis 客户端"""
        if not self.settings.redis_url:
            logger.info("Redis 未配置，课程元数据与提供商配置仅使用请求体中的数据")
            return

        try:
            self._client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._available = True
            logger.info(f"Redis 已启用: {self.settings.redis_url}")
        except Exception as e:
            logger.warning(f"Redis 连接失败: {e}，元数据读取已禁用")

    @property
    def available(self) -> bool:
        """Redis 是否可用"""
        return self._available

    def _llm_providers_key(self, project_name: str) -> str:
        return f"{project_name}{self.settings.redis_llm_providers_suffix}"

    async def get_course_metadata(self, course_name: str) -> CourseMetadata | None:
        """
        获取课程元数据

        Args:
            course_name: 课程（项目）名称

        Returns:
            CourseMetadata | None: 不存在、解析失败或 Redis 不可用时返回 None
        """
        if not self.available or not course_name:
            return None

        try:
            raw = await self._client.hget(self.settings.redis_course_metadata_key, course_name)
        except Exception as e:
            logger.warning(f"读取课程元数据失败: course={course_name}, error={e}")
            return None

        if not raw:
            return None

        try:
            return CourseMetadata.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"课程元数据格式错误: course={course_name}, error={e}")
            return None

    async def get_llm_providers(self, project_name: str) -> LLMProviders:
        """
        获取项目的模型提供商配置

        Returns:
            LLMProviders: 不存在或解析失败时返回空配置
        """
        if not self.available or not project_name:
            return LLMProviders({})

        key = self._llm_providers_key(project_name)
        try:
            raw = await self._client.get(key)
        except Exception as e:
            logger.warning(f"读取提供商配置失败: key={key}, error={e}")
            return LLMProviders({})

        if not raw:
            return LLMProviders({})

        try:
            return LLMProviders.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"提供商配置格式错误: key={key}, error={e}")
            return LLMProviders({})

    async def close(self) -> None:
        """关闭 Redis 连接"""
        if self._client is not None:
            await self._client.aclose()
            self._available = False


@lru_cache(maxsize=1)
def get_redis_cache() -> RedisCache:
    """获取 Redis 客户端单例"""
    return RedisCache()
