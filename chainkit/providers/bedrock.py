"""
Amazon Bedrock Provider (async with aiobotocore)

同一个 bedrock-runtime 接口背后是多家模型厂商，请求体和响应体的格式各不相同，
由 BedrockInputOutputAdapter 按 provider 标识做转换
"""

from typing import Any
from collections.abc import AsyncIterator

import orjson
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError
from loguru import logger

from chainkit.base import BaseLLM
from chainkit.callbacks import CallbackManager
from chainkit.exceptions import (
    LLMAPIError,
    LLMConfigError,
    LLMDecodeError,
    LLMStreamingError,
    LLMTimeoutError,
)
from chainkit.providers.aws import AioBotoClientMixin, convert_client_error
from chainkit.types import (
    BedrockExtraConfig,
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    StreamChunk,
    TokenUsage,
)

ANTHROPIC_VERSION = "bedrock-2023-05-31"

SUPPORTED_PROVIDERS = ("ai21", "amazon", "anthropic", "cohere", "cohere-r", "meta", "mistral")

# 停止序列在各 provider 请求体中的字段名，meta 不支持停止序列
PROVIDER_STOP_SEQUENCE_KEYS: dict[str, str] = {
    "anthropic": "stop_sequences",
    "amazon": "stopSequences",
    "ai21": "stop_sequences",
    "cohere": "stop_sequences",
    "cohere-r": "stop_sequences",
    "mistral": "stop",
}

# GenerateOptions 字段 -> provider 参数名
PROVIDER_PARAM_KEYS: dict[str, dict[str, str]] = {
    "ai21": {"max_tokens": "maxTokens", "temperature": "temperature", "top_p": "topP"},
    "amazon": {"max_tokens": "maxTokenCount", "temperature": "temperature", "top_p": "topP"},
    "anthropic": {"max_tokens": "max_tokens", "temperature": "temperature", "top_p": "top_p", "top_k": "top_k"},
    "cohere": {"max_tokens": "max_tokens", "temperature": "temperature", "top_p": "p", "top_k": "k"},
    "cohere-r": {"max_tokens": "max_tokens", "temperature": "temperature", "top_p": "p", "top_k": "k"},
    "meta": {"max_tokens": "max_gen_len", "temperature": "temperature", "top_p": "top_p"},
    "mistral": {"max_tokens": "max_tokens", "temperature": "temperature", "top_p": "top_p", "top_k": "top_k"},
}

INVOCATION_METRICS_KEY = "amazon-bedrock-invocationMetrics"

# 跨区域推理 profile 的前缀，例如 us.anthropic.claude-3-haiku
_REGION_PREFIXES = ("us", "eu", "apac")


def get_provider(model_id: str) -> str:
    """从模型 ID 解析 provider 标识

    Examples:
        >>> get_provider("anthropic.claude-3-haiku-20240307-v1:0")
        'anthropic'
        >>> get_provider("cohere.command-r-v1:0")
        'cohere-r'
    """
    parts = model_id.split(".")
    provider = parts[1] if len(parts) > 2 and parts[0] in _REGION_PREFIXES else parts[0]
    if provider == "cohere" and "command-r" in model_id:
        provider = "cohere-r"
    return provider


class BedrockInputOutputAdapter:
    """按 provider 准备请求体、解析响应体

    Raises:
        LLMConfigError: 构造时传入未知的 provider
    """

    def __init__(self, provider: str):
        if provider not in SUPPORTED_PROVIDERS:
            raise LLMConfigError(f"Unsupported bedrock provider: {provider}")
        self.provider = provider

    def prepare_input(self, prompt: str, params: dict[str, Any]) -> bytes:
        """
        构建请求体

        Args:
            prompt: 提示词
            params: provider 原生推理参数（不会被修改）

        Returns:
            JSON 编码的请求体
        """
        body: dict[str, Any]
        if self.provider == "amazon":
            body = {"inputText": prompt, "textGenerationConfig": dict(params)}
        elif self.provider == "anthropic":
            body = {"anthropic_version": ANTHROPIC_VERSION, **params}
            body["messages"] = [{"role": "user", "content": prompt}]
        elif self.provider == "cohere-r":
            body = {**params, "message": prompt}
        elif self.provider == "mistral":
            body = {**params, "prompt": f"<s>[INST] {prompt} [/INST]"}
        else:
            body = {**params, "prompt": prompt}
        return orjson.dumps(body)

    def prepare_output(self, response: bytes) -> str:
        """
        从完整响应体中取出生成文本

        Raises:
            LLMDecodeError: 响应不是合法 JSON 或结构不符合该 provider 的格式
        """
        data = self._loads(response)
        try:
            if self.provider == "ai21":
                return data["completions"][0]["data"]["text"]
            if self.provider == "amazon":
                return data["results"][0]["outputText"]
            if self.provider == "anthropic":
                return data["content"][0]["text"]
            if self.provider == "cohere":
                return data["generations"][0]["text"]
            if self.provider == "cohere-r":
                return data["text"]
            if self.provider == "meta":
                return data["generation"]
            return data["outputs"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMDecodeError(f"Malformed {self.provider} response: {e!r}") from e

    def prepare_stream_output(self, chunk: bytes) -> StreamChunk:
        """
        解析一个流式响应块

        Returns:
            本块的 token 文本和 token 使用量增量（来自 invocation metrics，通常只在最后一块出现）

        Raises:
            LLMStreamingError: 响应块不是合法 JSON 或结构不符合该 provider 的格式
        """
        data = self._loads(chunk, LLMStreamingError)
        finish_reason: str | None = None
        try:
            if self.provider == "amazon":
                token = data.get("outputText", "")
                finish_reason = data.get("completionReason")
            elif self.provider == "anthropic":
                delta = data.get("delta") or {}
                token = delta.get("text", "")
                finish_reason = delta.get("stop_reason")
            elif self.provider == "cohere":
                generations = data.get("generations")
                token = generations[0]["text"] if generations else ""
                finish_reason = data.get("finish_reason")
            elif self.provider == "cohere-r":
                token = data.get("text", "")
                finish_reason = data.get("finish_reason") if data.get("is_finished") else None
            elif self.provider == "meta":
                token = data.get("generation", "")
                finish_reason = data.get("stop_reason")
            elif self.provider == "mistral":
                output = data["outputs"][0]
                token = output.get("text", "")
                finish_reason = output.get("stop_reason")
            else:
                token = data["completions"][0]["data"]["text"]
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise LLMStreamingError(f"Malformed {self.provider} stream chunk: {e!r}") from e

        usage = None
        metrics = data.get(INVOCATION_METRICS_KEY)
        if isinstance(metrics, dict):
            input_tokens = int(metrics.get("inputTokenCount", 0))
            output_tokens = int(metrics.get("outputTokenCount", 0))
            usage = TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        return StreamChunk(text=token or "", usage=usage, finish_reason=finish_reason)

    def _loads(self, payload: bytes, error_cls: type[LLMDecodeError] = LLMDecodeError) -> dict[str, Any]:
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            raise error_cls(f"Invalid {self.provider} payload: {e}") from e
        if not isinstance(data, dict):
            raise error_cls(f"Invalid {self.provider} payload: expected a JSON object")
        return data


class BedrockLLM(AioBotoClientMixin, BaseLLM[BedrockExtraConfig]):
    """
    Amazon Bedrock 补全模型

    model_name 是 Bedrock 模型 ID，provider 从模型 ID 前缀解析
    """

    model_type = ModelTypeEnum.bedrock
    service_name = "bedrock-runtime"

    def __init__(self, *args: Any, client: Any = None, **kwargs: Any):
        """
        Args:
            client: 外部注入的 bedrock-runtime client（需要实现 invoke_model / invoke_model_with_response_stream）
        """
        super().__init__(*args, **kwargs)
        self.provider = get_provider(self.model_name)
        self.adapter = BedrockInputOutputAdapter(self.provider)
        self._init_aws_client(client)

    async def aclose(self) -> None:
        await self._close_aws_client()
        await super().aclose()

    def build_model_params(self, options: GenerateOptions) -> dict[str, Any]:
        """
        构建 provider 原生推理参数

        extra_config.model_params 作为基础，GenerateOptions 中的参数按 provider 字段名覆盖；
        停止序列写入该 provider 对应的字段，不支持停止序列的 provider 直接忽略
        """
        params = dict(self.extra_config.model_params)
        for option_name, param_name in PROVIDER_PARAM_KEYS[self.provider].items():
            value = getattr(options, option_name)
            if value is not None:
                params[param_name] = value

        if options.stop:
            stop_key = PROVIDER_STOP_SEQUENCE_KEYS.get(self.provider)
            if stop_key is None:
                logger.debug(f"Bedrock provider {self.provider} does not support stop sequences, ignored")
            else:
                params[stop_key] = list(options.stop)
        return params

    async def _generate(self, prompt: str, options: GenerateOptions, run_manager: CallbackManager) -> ModelResult:
        body = self.adapter.prepare_input(prompt, self.build_model_params(options))
        client = await self.client
        try:
            response = await client.invoke_model(
                modelId=self.model_name,
                body=body,
                accept="application/json",
                contentType="application/json",
            )
            payload = await response["body"].read()
        except ClientError as e:
            logger.error(f"Bedrock API error: {e}")
            raise convert_client_error(e, "Bedrock") from e
        except ReadTimeoutError as e:
            logger.error(f"Bedrock request timeout: {e}")
            raise LLMTimeoutError(f"Bedrock request timeout: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Bedrock request error: {e}")
            raise LLMAPIError(f"Bedrock request error: {e}") from e

        text = self.adapter.prepare_output(payload)
        return ModelResult(generations=[Generation(text=text)], llm_output={"model_name": self.model_name})

    async def _stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        body = self.adapter.prepare_input(prompt, self.build_model_params(options))
        client = await self.client
        try:
            response = await client.invoke_model_with_response_stream(
                modelId=self.model_name,
                body=body,
                accept="application/json",
                contentType="application/json",
            )
            async for event in response["body"]:
                chunk = event.get("chunk")
                if chunk is None:
                    continue
                yield self.adapter.prepare_stream_output(chunk["bytes"])
        except ClientError as e:
            logger.error(f"Bedrock API error in stream: {e}")
            raise convert_client_error(e, "Bedrock") from e
        except ReadTimeoutError as e:
            logger.error(f"Bedrock stream timeout: {e}")
            raise LLMTimeoutError(f"Bedrock stream timeout: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Bedrock stream error: {e}")
            raise LLMAPIError(f"Bedrock stream error: {e}") from e

    async def _generate_from_stream(
        self,
        chunks: AsyncIterator[StreamChunk],
        run_manager: CallbackManager,
    ) -> ModelResult:
        result = await super()._generate_from_stream(chunks, run_manager)
        usage = result.token_usage or TokenUsage()
        return result.model_copy(
            update={
                "llm_output": {
                    **result.llm_output,
                    "input_tokens": usage.prompt_tokens,
                    "output_tokens": usage.completion_tokens,
                },
            },
        )


__all__ = [
    "ANTHROPIC_VERSION",
    "SUPPORTED_PROVIDERS",
    "get_provider",
    "BedrockInputOutputAdapter",
    "BedrockLLM",
]
