"""
chainkit

可组合的 LLM 应用框架：统一的模型接口、提示词模板、chain、memory 和 agent。
"""

from chainkit.base import BaseChatModel, BaseLLM, LanguageModel
from chainkit.callbacks import (
    BaseCallbackHandler,
    CallbackManager,
    LoggingCallbackHandler,
    TokenUsageCallbackHandler,
)
from chainkit.exceptions import (
    LLMError,
    LLMConfigError,
    LLMModelNotFoundError,
    LLMAPIError,
    LLMDecodeError,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMCapabilityError,
    LLMStreamingError,
)
from chainkit.factory import LLMModelFactory
from chainkit.types import (
    ChatMessage,
    ChatMessageType,
    Document,
    GenerateOptions,
    ModelConfig,
    ModelResult,
    ModelTypeEnum,
)

__all__ = [
    # 基类
    "BaseLLM",
    "BaseChatModel",
    "LanguageModel",
    # 工厂
    "LLMModelFactory",
    # 回调
    "BaseCallbackHandler",
    "CallbackManager",
    "LoggingCallbackHandler",
    "TokenUsageCallbackHandler",
    # 类型
    "ChatMessage",
    "ChatMessageType",
    "Document",
    "GenerateOptions",
    "ModelConfig",
    "ModelResult",
    "ModelTypeEnum",
    # 异常
    "LLMError",
    "LLMConfigError",
    "LLMModelNotFoundError",
    "LLMAPIError",
    "LLMDecodeError",
    "LLMTimeoutError",
    "LLMRateLimitError",
    "LLMCapabilityError",
    "LLMStreamingError",
]

__version__ = "0.1.0"
