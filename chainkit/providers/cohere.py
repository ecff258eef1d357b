"""
Cohere Provider

使用 httpx 直接调用 generate 接口，失败时按 extra_config 中的重试策略重试
"""

import asyncio
from typing import Any

import httpx
import orjson
from loguru import logger

from chainkit.base import BaseLLM
from chainkit.callbacks import CallbackManager
from chainkit.exceptions import LLMAPIError, LLMDecodeError, LLMRateLimitError, LLMTimeoutError
from chainkit.types import (
    CohereExtraConfig,
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    TokenUsage,
)

DEFAULT_BASE_URL = "https://api.cohere.ai"


class CohereLLM(BaseLLM[CohereExtraConfig]):
    """
    Cohere 补全模型
    """

    model_type = ModelTypeEnum.cohere

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.base_url = self.base_url or DEFAULT_BASE_URL

    def _build_request_body(self, prompt: str, options: GenerateOptions) -> dict[str, Any]:
        """
        构建请求体

        Args:
            prompt: 提示词
            options: 调用参数

        Returns:
            Cohere API 请求体
        """
        body: dict[str, Any] = {
            "model": self.model_name,
            "prompt": prompt,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "p": options.top_p,
        }
        if options.top_k is not None:
            body["k"] = options.top_k
        if options.stop:
            body["stop_sequences"] = options.stop
        if options.frequency_penalty is not None:
            body["frequency_penalty"] = options.frequency_penalty
        if options.presence_penalty is not None:
            body["presence_penalty"] = options.presence_penalty
        if options.n is not None:
            body["num_generations"] = options.n
        return body

    async def _generate(self, prompt: str, options: GenerateOptions, run_manager: CallbackManager) -> ModelResult:
        client = self.get_httpx_client()
        url = self.build_endpoint_url()
        headers = self.build_request_headers()
        body = self._build_request_body(prompt, options)

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.post(url, json=body, headers=headers, timeout=self.timeout)
            except httpx.TimeoutException as e:
                if attempt >= self.max_retries:
                    logger.error(f"Cohere request timeout: {e}")
                    raise LLMTimeoutError(f"Cohere request timeout: {e}") from e
                delay = self.get_retry_delay(attempt)
                logger.warning(f"Cohere request timeout: {e}, retry in {delay}s ({attempt + 1}/{self.max_retries})")
                await asyncio.sleep(delay)
                continue
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    logger.error(f"Cohere connection error: {e}")
                    raise LLMAPIError(f"Cohere connection error: {e}") from e
                delay = self.get_retry_delay(attempt)
                logger.warning(f"Cohere connection error: {e}, retry in {delay}s ({attempt + 1}/{self.max_retries})")
                await asyncio.sleep(delay)
                continue

            if response.status_code == 200:
                return self._parse_response(response.content)

            error_message = self._extract_error_message(response.content)
            if self.should_retry(response.status_code, attempt):
                delay = self.get_retry_delay(attempt)
                logger.warning(
                    f"Cohere request failed ({response.status_code}: {error_message}), "
                    f"retry in {delay}s ({attempt + 1}/{self.max_retries})",
                )
                await asyncio.sleep(delay)
                continue

            logger.error(f"Cohere API error: {error_message} (status: {response.status_code})")
            if response.status_code == 429:
                raise LLMRateLimitError(f"Cohere rate limit: {error_message}", status_code=429)
            raise LLMAPIError(f"Cohere API error: {error_message}", status_code=response.status_code)

        raise LLMAPIError("Cohere API request failed, max retries reached")

    def _parse_response(self, content: bytes) -> ModelResult:
        """
        解析响应

        Raises:
            LLMDecodeError: 响应不是合法 JSON 或缺少生成内容
        """
        try:
            response_data = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            raise LLMDecodeError(f"Cohere returned invalid JSON: {e}") from e

        text = self._extract_by_path(response_data, self.extra_config.response_content_path)
        if not isinstance(text, str):
            raise LLMDecodeError(f"Cohere response has no content at {self.extra_config.response_content_path}")

        generations = []
        for item in response_data.get("generations") or []:
            generations.append(Generation(text=item.get("text", ""), info={"finish_reason": item.get("finish_reason")}))
        if not generations:
            finish_reason = self._extract_by_path(response_data, self.extra_config.response_finish_reason_path)
            generations = [Generation(text=text, info={"finish_reason": finish_reason})]

        billed = self._extract_by_path(response_data, "meta.billed_units") or {}
        input_tokens = int(billed.get("input_tokens", 0))
        output_tokens = int(billed.get("output_tokens", 0))
        usage = TokenUsage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )
        return ModelResult(generations=generations, llm_output={"token_usage": usage.model_dump()})

    @staticmethod
    def _extract_error_message(content: bytes) -> str:
        """从错误响应中提取错误信息，响应不是 JSON 时返回原文"""
        try:
            data = orjson.loads(content)
        except orjson.JSONDecodeError:
            return content.decode("utf-8", errors="replace") or "Unknown error"
        if isinstance(data, dict):
            return str(data.get("message") or data.get("error") or "Unknown error")
        return str(data)


__all__ = [
    "CohereLLM",
]
