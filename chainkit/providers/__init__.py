"""
模型 Provider 实现
"""

from chainkit.providers.anthropic import AnthropicChatModel
from chainkit.providers.bedrock import BedrockInputOutputAdapter, BedrockLLM
from chainkit.providers.cohere import CohereLLM
from chainkit.providers.fake import FakeChatModel, FakeLLM
from chainkit.providers.openai import OpenAIChatModel, OpenAILLM
from chainkit.providers.sagemaker import ContentHandler, JsonContentHandler, SageMakerEndpointLLM

__all__ = [
    "AnthropicChatModel",
    "BedrockInputOutputAdapter",
    "BedrockLLM",
    "CohereLLM",
    "FakeChatModel",
    "FakeLLM",
    "OpenAIChatModel",
    "OpenAILLM",
    "ContentHandler",
    "JsonContentHandler",
    "SageMakerEndpointLLM",
]
