"""
Anthropic Provider

使用官方 Anthropic SDK 实现
"""

from typing import Any
from collections.abc import AsyncIterator

import anthropic
from anthropic import AsyncAnthropic
from loguru import logger

from chainkit.base import BaseChatModel
from chainkit.callbacks import CallbackManager
from chainkit.exceptions import LLMAPIError, LLMRateLimitError, LLMTimeoutError
from chainkit.types import (
    AnthropicExtraConfig,
    ChatMessage,
    ChatMessageType,
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    StreamChunk,
    TokenUsage,
)


def _convert_error(e: anthropic.APIError) -> LLMAPIError:
    status_code = getattr(e, "status_code", None)
    if isinstance(e, anthropic.APITimeoutError):
        return LLMTimeoutError(f"Anthropic request timeout: {e}")
    if isinstance(e, anthropic.RateLimitError):
        return LLMRateLimitError(f"Anthropic rate limit: {e}", status_code=status_code)
    return LLMAPIError(f"Anthropic API error: {e}", status_code=status_code)


class AnthropicChatModel(BaseChatModel[AnthropicExtraConfig]):
    """
    Anthropic Claude 聊天模型

    使用 Messages API，支持流式输出
    """

    model_type = ModelTypeEnum.anthropic

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        logger.debug(
            f"Initializing Anthropic client - base_url: {self.base_url}, timeout: {self.timeout}, max_retries: {self.max_retries}",
        )
        self._client = AsyncAnthropic(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_client=self._http_client,
        )

    async def aclose(self) -> None:
        # 外部注入的 http_client 由调用方关闭
        if self._http_client is None:
            await self._client.close()
        await super().aclose()

    @staticmethod
    def _convert_messages(messages: list[ChatMessage]) -> tuple[list[dict[str, str]], str | None]:
        """
        转换消息格式

        Anthropic 的消息格式与 OpenAI 不同：system 消息独立在 system 参数中，
        多条 system 消息按顺序用空行拼接

        Args:
            messages: ChatMessage 列表

        Returns:
            (messages, system_prompt) 元组
        """
        converted: list[dict[str, str]] = []
        system_parts: list[str] = []

        for msg in messages:
            if msg.type == ChatMessageType.system:
                system_parts.append(msg.content)
                continue
            if msg.type == ChatMessageType.ai:
                role = "assistant"
            elif msg.type == ChatMessageType.generic and msg.role == "assistant":
                role = "assistant"
            else:
                role = "user"
            converted.append({"role": role, "content": msg.content})

        return converted, "\n\n".join(system_parts) or None

    def _build_kwargs(self, messages: list[ChatMessage], options: GenerateOptions) -> dict[str, Any]:
        converted, system_prompt = self._convert_messages(messages)
        kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": converted,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "top_p": options.top_p,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if options.stop:
            kwargs["stop_sequences"] = options.stop
        if options.top_k is not None:
            kwargs["top_k"] = options.top_k
        return kwargs

    async def _generate(
        self,
        messages: list[ChatMessage],
        options: GenerateOptions,
        run_manager: CallbackManager,
    ) -> ModelResult:
        try:
            response = await self._client.messages.create(**self._build_kwargs(messages, options))
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise _convert_error(e) from e

        content = "".join(block.text for block in response.content if block.type == "text")
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        return ModelResult(
            generations=[
                Generation(text=content, message=ChatMessage.ai(content), info={"finish_reason": response.stop_reason}),
            ],
            llm_output={"token_usage": usage.model_dump(), "model_name": response.model},
        )

    async def _stream(self, messages: list[ChatMessage], options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        try:
            stream = await self._client.messages.create(**self._build_kwargs(messages, options), stream=True)

            chunk_count = 0
            async for event in stream:
                if event.type == "message_start":
                    input_tokens = event.message.usage.input_tokens
                    yield StreamChunk(
                        usage=TokenUsage(prompt_tokens=input_tokens, total_tokens=input_tokens),
                    )
                elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                    chunk_count += 1
                    yield StreamChunk(text=event.delta.text)
                elif event.type == "message_delta":
                    output_tokens = event.usage.output_tokens
                    yield StreamChunk(
                        usage=TokenUsage(completion_tokens=output_tokens, total_tokens=output_tokens),
                        finish_reason=event.delta.stop_reason,
                    )

            logger.debug(f"Anthropic stream completed - total chunks: {chunk_count}")
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error in stream: {e}")
            raise _convert_error(e) from e


__all__ = [
    "AnthropicChatModel",
]
