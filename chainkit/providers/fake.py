"""
测试用 Provider

按顺序循环返回预设响应，不发起任何网络请求
"""

import re
from collections.abc import AsyncIterator, Sequence

from chainkit.base import BaseChatModel, BaseLLM
from chainkit.callbacks import CallbackManager
from chainkit.types import (
    ChatMessage,
    FakeExtraConfig,
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    StreamChunk,
    TokenUsage,
)

_TOKEN_PATTERN = re.compile(r"\S+\s*|\s+")


def _split_tokens(text: str) -> list[str]:
    return _TOKEN_PATTERN.findall(text)


class _FakeResponsesMixin:
    extra_config: FakeExtraConfig

    def _init_responses(self, responses: Sequence[str] | None) -> None:
        self.responses: list[str] = list(responses if responses is not None else self.extra_config.responses)
        if not self.responses:
            self.responses = ["fake response"]
        self.call_count = 0

    def _next_response(self) -> str:
        response = self.responses[self.call_count % len(self.responses)]
        self.call_count += 1
        return response

    def _usage(self, prompt_text: str, completion: str) -> TokenUsage:
        prompt_tokens = len(prompt_text) // 4
        completion_tokens = len(completion) // 4
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class FakeLLM(_FakeResponsesMixin, BaseLLM[FakeExtraConfig]):
    """测试用补全模型

    Attributes:
        prompts: 收到的所有提示词（按调用顺序）
        options: 收到的所有调用参数
    """

    model_type = ModelTypeEnum.fake

    def __init__(self, model_name: str = "fake-llm", responses: Sequence[str] | None = None, **kwargs):
        super().__init__(model_name, **kwargs)
        self._init_responses(responses)
        self.prompts: list[str] = []
        self.options: list[GenerateOptions] = []

    async def _generate(self, prompt: str, options: GenerateOptions, run_manager: CallbackManager) -> ModelResult:
        self.prompts.append(prompt)
        self.options.append(options)
        text = self._next_response()
        return ModelResult(
            generations=[Generation(text=text, info={"finish_reason": "stop"})],
            llm_output={"token_usage": self._usage(prompt, text).model_dump(), "model_name": self.model_name},
        )

    async def _stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        self.prompts.append(prompt)
        self.options.append(options)
        text = self._next_response()
        for token in _split_tokens(text):
            yield StreamChunk(text=token)
        yield StreamChunk(usage=self._usage(prompt, text), finish_reason="stop")


class FakeChatModel(_FakeResponsesMixin, BaseChatModel[FakeExtraConfig]):
    """测试用聊天模型"""

    model_type = ModelTypeEnum.fake_chat

    def __init__(self, model_name: str = "fake-chat", responses: Sequence[str] | None = None, **kwargs):
        super().__init__(model_name, **kwargs)
        self._init_responses(responses)
        self.messages: list[list[ChatMessage]] = []

    async def _generate(
        self,
        messages: list[ChatMessage],
        options: GenerateOptions,
        run_manager: CallbackManager,
    ) -> ModelResult:
        self.messages.append(messages)
        text = self._next_response()
        prompt_text = "".join(m.content for m in messages)
        return ModelResult(
            generations=[Generation(text=text, message=ChatMessage.ai(text), info={"finish_reason": "stop"})],
            llm_output={"token_usage": self._usage(prompt_text, text).model_dump(), "model_name": self.model_name},
        )

    async def _stream(self, messages: list[ChatMessage], options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        self.messages.append(messages)
        text = self._next_response()
        for token in _split_tokens(text):
            yield StreamChunk(text=token)
        prompt_text = "".join(m.content for m in messages)
        yield StreamChunk(usage=self._usage(prompt_text, text), finish_reason="stop")


__all__ = [
    "FakeLLM",
    "FakeChatModel",
]
