"""
数据模式层 (Schemas)

使用 Pydantic 定义请求模型和提供商配置：
- 自动数据验证
- camelCase 与 snake_case 字段互通
"""

from courseai.schemas.providers import (
    LLM_PROVIDER_ORDER,
    LLMProvider,
    LLMProviders,
    ProviderModel,
    ProviderName,
)
from courseai.schemas.chat import (
    ChatBody,
    ChatModel,
    Content,
    ContextWithMetadata,
    Conversation,
    CourseMetadata,
    LinkParameters,
    Message,
    ToolOutput,
    UIUCTool,
)

__all__ = [
    "LLM_PROVIDER_ORDER",
    "LLMProvider",
    "LLMProviders",
    "ProviderModel",
    "ProviderName",
    "ChatBody",
    "ChatModel",
    "Content",
    "ContextWithMetadata",
    "Conversation",
    "CourseMetadata",
    "LinkParameters",
    "Message",
    "ToolOutput",
    "UIUCTool",
]
