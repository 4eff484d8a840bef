"""
Course AI 对话路由服务

把课程对话构建为最终 prompt，按模型 ID 路由到 OpenAI / Azure / Bedrock /
Gemini / SambaNova / Ollama / vLLM 等后端，并把推理内容转换为内联 <think> 标签。
"""
