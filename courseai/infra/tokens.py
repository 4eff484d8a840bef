"""
Token 计数

基于 tiktoken，按配置的模型名选择编码，未知模型回退到 o200k_base / cl100k_base。
"""

import logging
from functools import lru_cache

import tiktoken

from courseai.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def get_encoding(model: str) -> tiktoken.Encoding:
    """获取模型对应的编码（缓存）"""
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        logger.warning(f"tiktoken 不识别模型 {model}，使用通用编码")
        try:
            return tiktoken.get_encoding("o200k_base")
        except ValueError:
            return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str | None) -> int:
    """统计文本 token 数"""
    if not text:
        return 0
    encoding = get_encoding(get_settings().token_encoding_model)
    return len(encoding.encode(text, disallowed_special=()))
