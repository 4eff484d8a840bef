"""
对话相关的请求模型

前端与 API 使用 camelCase 字段，Python 侧统一使用 snake_case 属性，
两种命名在解析时都可接受（populate_by_name）。
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from courseai.schemas.providers import LLMProviders


class WireModel(BaseModel):
    """接受 camelCase 别名与 snake_case 字段名，忽略未知字段"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ==================== 消息内容 ====================

class ImageURL(WireModel):
    url: str


class Content(WireModel):
    """消息内容片段：text / image_url / tool_image_url / file"""
    type: str = Field(..., description="内容类型")
    text: str | None = None
    image_url: ImageURL | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    file_type: str | None = Field(default=None, alias="fileType")
    file_size: int | None = Field(default=None, alias="fileSize")


class ContextWithMetadata(WireModel):
    """检索到的文档片段"""
    id: int | str | None = None
    text: str = ""
    readable_filename: str = ""
    course_name: str | None = None
    s3_path: str | None = None
    pagenumber: str | int | None = None
    pagenumber_or_timestamp: str | None = None
    url: str | None = None
    base_url: str | None = None


class ToolOutput(WireModel):
    text: str | None = None
    image_urls: list[str] | None = Field(default=None, alias="imageUrls")
    s3_paths: list[str] | None = Field(default=None, alias="s3Paths")
    data: dict[str, Any] | None = None


class UIUCTool(WireModel):
    """已执行的工具调用及其输出"""
    id: str = ""
    invocation_id: str | None = Field(default=None, alias="invocationId")
    name: str = ""
    readable_name: str = Field(default="", alias="readableName")
    description: str = ""
    ai_generated_argument_values: dict[str, Any] | None = Field(default=None, alias="aiGeneratedArgumentValues")
    output: ToolOutput | None = None
    error: str | None = None


class MessageFeedback(WireModel):
    is_positive: bool | None = Field(default=None, alias="isPositive")
    category: str | None = None
    details: str | None = None


class Message(WireModel):
    id: str = ""
    role: Literal["user", "assistant", "system"]
    content: str | list[Content] = ""
    contexts: list[ContextWithMetadata] | None = None
    tools: list[UIUCTool] | None = None
    latest_system_message: str | None = Field(default=None, alias="latestSystemMessage")
    # 前端字段名拼写为 Promt
    final_prompt_engineered_message: str | None = Field(default=None, alias="finalPromtEngineeredMessage")
    response_time_sec: float | None = Field(default=None, alias="responseTimeSec")
    feedback: MessageFeedback | None = None
    was_query_rewritten: bool | None = Field(default=None, alias="wasQueryRewritten")
    query_rewrite_text: str | None = Field(default=None, alias="queryRewriteText")


# ==================== 对话 ====================

class ChatModel(WireModel):
    """对话使用的模型"""
    id: str | None = None
    name: str = ""
    token_limit: int = Field(default=128000, alias="tokenLimit")
    enabled: bool = True
    parameter_size: str | None = Field(default=None, alias="parameterSize")
    default: bool | None = None
    temperature: float | None = None


class LinkParameters(WireModel):
    guided_learning: bool = Field(default=False, alias="guidedLearning")
    documents_only: bool = Field(default=False, alias="documentsOnly")
    system_prompt_only: bool = Field(default=False, alias="systemPromptOnly")


class Conversation(WireModel):
    id: str = ""
    name: str = ""
    messages: list[Message] = Field(default_factory=list)
    model: ChatModel = Field(default_factory=ChatModel)
    prompt: str = ""
    temperature: float | None = None
    folder_id: str | None = Field(default=None, alias="folderId")
    user_email: str | None = Field(default=None, alias="userEmail")
    project_name: str | None = Field(default=None, alias="projectName")
    link_parameters: LinkParameters | None = Field(default=None, alias="linkParameters")
    summary: str | None = None


class CourseMetadata(WireModel):
    """课程元数据（Redis hash course_metadatas 中的 JSON）"""
    is_private: bool = False
    course_owner: str = ""
    course_admins: list[str] = Field(default_factory=list)
    approved_emails_list: list[str] = Field(default_factory=list)
    example_questions: list[str] | None = None
    course_intro_message: str | None = None
    system_prompt: str | None = None
    project_description: str | None = None
    documents_only: bool = Field(default=False, alias="documentsOnly")
    guided_learning: bool = Field(default=False, alias="guidedLearning")
    system_prompt_only: bool = Field(default=False, alias="systemPromptOnly")
    vector_search_rewrite_disabled: bool = False


class ChatBody(WireModel):
    """POST /api/allNewRoutingChat 请求体"""
    conversation: Conversation | None = None
    course_name: str = ""
    course_metadata: CourseMetadata | None = Field(default=None, alias="courseMetadata")
    llm_providers: LLMProviders | None = Field(default=None, alias="llmProviders")
    stream: bool = True
    mode: Literal["chat", "optimize_prompt"] = "chat"
    summary: bool = False
