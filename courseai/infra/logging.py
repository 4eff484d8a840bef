"""
结构化日志

每条日志带上当前请求的上下文：请求 ID、课程名称，以及路由后的模型与提供商。
生产环境输出 JSON，开发环境输出带颜色的单行文本。
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from courseai.config import get_settings

# 请求上下文变量
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
course_name_var: ContextVar[str | None] = ContextVar("course_name", default=None)
model_route_var: ContextVar[tuple[str, str] | None] = ContextVar("model_route", default=None)


def set_course_name(course_name: str | None) -> None:
    """设置当前课程名称"""
    course_name_var.set(course_name)


def set_model_route(model_id: str | None, provider: str | None) -> None:
    """记录当前请求路由到的模型与提供商"""
    model_route_var.set((model_id or "", provider or "") if model_id or provider else None)


def reset_request_context(request_id: str) -> None:
    """新请求开始：设置请求 ID，清空课程与模型上下文"""
    request_id_var.set(request_id)
    course_name_var.set(None)
    model_route_var.set(None)


def _context_fields() -> dict[str, str]:
    fields: dict[str, str] = {}
    request_id = request_id_var.get()
    if request_id:
        fields["request_id"] = request_id
    course_name = course_name_var.get()
    if course_name:
        fields["course_name"] = course_name
    route = model_route_var.get()
    if route:
        fields["model_id"], fields["provider"] = route
    return fields


_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


class JSONFormatter(logging.Formatter):
    """单行 JSON：timestamp / level / logger / message，加上请求上下文与 extra 字段"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_data.update(_context_fields())

        # 源代码位置（仅 DEBUG 级别）
        if record.levelno <= logging.DEBUG:
            log_data["location"] = f"{record.pathname}:{record.lineno}"

        extra = {
            k: v for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS and not k.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """开发环境：2024-01-01 00:00:00 INFO [request_id] (course) <model@provider> logger - message"""

    COLORS = {
        "DEBUG": "\033[36m",     # 青色
        "INFO": "\033[32m",      # 绿色
        "WARNING": "\033[33m",   # 黄色
        "ERROR": "\033[31m",     # 红色
        "CRITICAL": "\033[35m",  # 紫色
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname
        color = self.COLORS.get(level, "")

        parts = [f"{timestamp} {color}{level:8}{self.RESET}"]

        context = _context_fields()
        if "request_id" in context:
            parts.append(f"[{context['request_id'][:8]}]")
        if "course_name" in context:
            parts.append(f"({context['course_name']})")
        if "model_id" in context:
            parts.append(f"<{context['model_id']}@{context['provider']}>")

        parts.append(f"{record.name} -")
        parts.append(record.getMessage())

        result = " ".join(parts)

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    配置应用日志

    Args:
        level: 日志级别（DEBUG/INFO/WARNING/ERROR），默认从配置读取
        json_format: 是否使用 JSON 格式，默认读取 log_json，未设置时生产环境使用 JSON
    """
    settings = get_settings()

    if level is None:
        level = settings.log_level
    log_level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # 降低第三方库日志级别
    for noisy_logger in (
        "uvicorn.access",
        "uvicorn.error",
        "httpx",
        "httpcore",
        "openai",
        "botocore",
        "urllib3",
    ):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("courseai").setLevel(log_level)


def get_logger(name: str) -> logging.Logger:
    """获取 logger 实例，name 通常使用 __name__"""
    return logging.getLogger(name)


class RequestTimer:
    """分阶段计时，get_metrics() 返回 total_ms 与各阶段的 {name}_ms"""

    def __init__(self):
        self.start_time = time.perf_counter()
        self.marks: list[tuple[str, float]] = []
        self._last_mark = self.start_time

    def mark(self, name: str) -> None:
        """记录一个时间点"""
        now = time.perf_counter()
        self.marks.append((name, now - self._last_mark))
        self._last_mark = now

    def get_metrics(self) -> dict[str, float]:
        total = time.perf_counter() - self.start_time
        metrics = {"total_ms": round(total * 1000, 2)}
        for name, duration in self.marks:
            metrics[f"{name}_ms"] = round(duration * 1000, 2)
        return metrics
