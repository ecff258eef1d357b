"""
OpenAI Provider

使用官方 OpenAI SDK 实现，提供补全模型和聊天模型
"""

from typing import Any
from collections.abc import AsyncIterator

import openai
from loguru import logger
from openai import AsyncOpenAI

from chainkit.base import BaseChatModel, BaseLLM
from chainkit.callbacks import CallbackManager
from chainkit.exceptions import LLMAPIError, LLMRateLimitError, LLMTimeoutError
from chainkit.types import (
    ChatMessage,
    ChatMessageType,
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    OpenAIExtraConfig,
    StreamChunk,
    TokenUsage,
)

ROLE_MAPPING: dict[ChatMessageType, str] = {
    ChatMessageType.human: "user",
    ChatMessageType.ai: "assistant",
    ChatMessageType.system: "system",
}


def _convert_error(e: openai.APIError) -> LLMAPIError:
    """将 SDK 异常转换为统一的 provider 异常"""
    status_code = getattr(e, "status_code", None)
    if isinstance(e, openai.APITimeoutError):
        return LLMTimeoutError(f"OpenAI request timeout: {e}")
    if isinstance(e, openai.RateLimitError):
        return LLMRateLimitError(f"OpenAI rate limit: {e}", status_code=status_code)
    return LLMAPIError(f"OpenAI API error: {e}", status_code=status_code)


def _convert_usage(usage: Any) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )


class _OpenAIClientMixin:
    """两种 OpenAI 模型共用的 client 初始化和参数构建"""

    extra_config: OpenAIExtraConfig

    def _init_client(self) -> None:
        logger.debug(
            f"Initializing OpenAI client - base_url: {self.base_url}, timeout: {self.timeout}, max_retries: {self.max_retries}",  # type: ignore[attr-defined]
        )
        self._client = AsyncOpenAI(
            api_key=self.api_key,  # type: ignore[attr-defined]
            base_url=self.base_url,  # type: ignore[attr-defined]
            organization=self.extra_config.organization,
            timeout=self.timeout,  # type: ignore[attr-defined]
            max_retries=self.max_retries,  # type: ignore[attr-defined]
            http_client=self._http_client,  # type: ignore[attr-defined]
        )

    async def aclose(self) -> None:
        # 外部注入的 http_client 由调用方关闭
        if self._http_client is None:  # type: ignore[attr-defined]
            await self._client.close()
        await super().aclose()  # type: ignore[misc]

    def _build_kwargs(self, options: GenerateOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model_name,  # type: ignore[attr-defined]
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
        }
        if options.stop:
            kwargs["stop"] = options.stop
        if options.frequency_penalty is not None:
            kwargs["frequency_penalty"] = options.frequency_penalty
        if options.presence_penalty is not None:
            kwargs["presence_penalty"] = options.presence_penalty
        if options.n is not None:
            kwargs["n"] = options.n
        return kwargs


class OpenAILLM(_OpenAIClientMixin, BaseLLM[OpenAIExtraConfig]):
    """
    OpenAI 补全模型（Completions API）
    """

    model_type = ModelTypeEnum.openai

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._init_client()

    async def _generate(self, prompt: str, options: GenerateOptions, run_manager: CallbackManager) -> ModelResult:
        try:
            response = await self._client.completions.create(prompt=prompt, **self._build_kwargs(options))
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise _convert_error(e) from e

        generations = [
            Generation(text=choice.text or "", info={"finish_reason": choice.finish_reason})
            for choice in response.choices
        ]
        return ModelResult(
            generations=generations,
            llm_output={"token_usage": _convert_usage(response.usage).model_dump(), "model_name": response.model},
        )

    async def _stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        try:
            stream = await self._client.completions.create(
                prompt=prompt,
                stream=True,
                stream_options={"include_usage": True},
                **self._build_kwargs(options),
            )
            async for chunk in stream:
                text = chunk.choices[0].text if chunk.choices else ""
                finish_reason = chunk.choices[0].finish_reason if chunk.choices else None
                usage = _convert_usage(chunk.usage) if chunk.usage else None
                yield StreamChunk(text=text or "", usage=usage, finish_reason=finish_reason)
        except openai.APIError as e:
            logger.error(f"OpenAI API error in stream: {e}")
            raise _convert_error(e) from e


class OpenAIChatModel(_OpenAIClientMixin, BaseChatModel[OpenAIExtraConfig]):
    """
    OpenAI 聊天模型（Chat Completions API）
    """

    model_type = ModelTypeEnum.openai_chat

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._init_client()

    @staticmethod
    def _convert_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
        """
        转换消息格式

        Args:
            messages: ChatMessage 列表

        Returns:
            OpenAI 格式的消息列表
        """
        converted = []
        for msg in messages:
            role = msg.role if msg.type == ChatMessageType.generic else ROLE_MAPPING[msg.type]
            converted.append({"role": role or "user", "content": msg.content})
        return converted

    async def _generate(
        self,
        messages: list[ChatMessage],
        options: GenerateOptions,
        run_manager: CallbackManager,
    ) -> ModelResult:
        try:
            response = await self._client.chat.completions.create(
                messages=self._convert_messages(messages),  # type: ignore[arg-type]
                **self._build_kwargs(options),
            )
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise _convert_error(e) from e

        generations = []
        for choice in response.choices:
            content = choice.message.content or ""
            generations.append(
                Generation(text=content, message=ChatMessage.ai(content), info={"finish_reason": choice.finish_reason}),
            )
        return ModelResult(
            generations=generations,
            llm_output={"token_usage": _convert_usage(response.usage).model_dump(), "model_name": response.model},
        )

    async def _stream(self, messages: list[ChatMessage], options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        try:
            stream = await self._client.chat.completions.create(
                messages=self._convert_messages(messages),  # type: ignore[arg-type]
                stream=True,
                stream_options={"include_usage": True},
                **self._build_kwargs(options),
            )
            chunk_count = 0
            async for chunk in stream:
                chunk_count += 1
                text = ""
                finish_reason = None
                if chunk.choices:
                    text = chunk.choices[0].delta.content or ""
                    finish_reason = chunk.choices[0].finish_reason
                usage = _convert_usage(chunk.usage) if chunk.usage else None
                yield StreamChunk(text=text, usage=usage, finish_reason=finish_reason)
            logger.debug(f"OpenAI stream completed - total chunks: {chunk_count}")
        except openai.APIError as e:
            logger.error(f"OpenAI API error in stream: {e}")
            raise _convert_error(e) from e


__all__ = [
    "OpenAILLM",
    "OpenAIChatModel",
]
