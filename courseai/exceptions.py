class ChatError(Exception):
    """对话处理错误基类"""

    code = "CHAT_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class PromptBuildError(ChatError):
    """Prompt 构建错误"""

    code = "PROMPT_BUILD_ERROR"
    status_code = 400


class ProviderConfigError(ChatError):
    """模型提供商配置错误"""

    code = "PROVIDER_CONFIG_ERROR"
    status_code = 400


class UnsupportedProviderError(ChatError):
    """不支持的模型或提供商"""

    code = "UNSUPPORTED_MODEL"
    status_code = 400


class ModelNotFoundError(ChatError):
    """模型不存在"""

    code = "MODEL_NOT_FOUND"
    status_code = 404


class ProviderConnectionError(ChatError):
    """上游服务连接失败"""

    code = "PROVIDER_CONNECTION_ERROR"
    status_code = 502


class ProviderRequestError(ChatError):
    """上游服务返回错误"""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, upstream_status: int | None = None, code: str | None = None):
        status = upstream_status if upstream_status and 200 <= upstream_status <= 599 else 500
        super().__init__(message, code=code, status_code=status)
        self.upstream_status = upstream_status
