"""
Amazon SageMaker Endpoint Provider (async with aiobotocore)

endpoint 上部署的模型格式各异，请求体/响应体的转换交给 ContentHandler
"""

from abc import ABC, abstractmethod
from typing import Any

import orjson
from botocore.exceptions import BotoCoreError, ClientError, ReadTimeoutError
from loguru import logger

from chainkit.base import BaseLLM
from chainkit.callbacks import CallbackManager
from chainkit.exceptions import LLMAPIError, LLMConfigError, LLMDecodeError, LLMTimeoutError
from chainkit.providers.aws import AioBotoClientMixin, convert_client_error
from chainkit.types import (
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    SageMakerExtraConfig,
)


class ContentHandler(ABC):
    """endpoint 请求/响应格式转换"""

    content_type: str = "application/json"
    accept: str = "application/json"

    @abstractmethod
    def transform_input(self, prompt: str, params: dict[str, Any]) -> bytes:
        """将提示词和参数转换为请求体"""

    @abstractmethod
    def transform_output(self, output: bytes) -> str:
        """从响应体中取出生成文本

        Raises:
            LLMDecodeError: 响应格式不符合预期
        """


class JsonContentHandler(ContentHandler):
    """HuggingFace TGI 风格的 JSON 格式

    请求: {"inputs": prompt, "parameters": {...}}
    响应: [{"generated_text": "..."}]
    """

    def transform_input(self, prompt: str, params: dict[str, Any]) -> bytes:
        return orjson.dumps({"inputs": prompt, "parameters": params})

    def transform_output(self, output: bytes) -> str:
        try:
            data = orjson.loads(output)
            if isinstance(data, dict):
                return data["generated_text"]
            return data[0]["generated_text"]
        except (orjson.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            raise LLMDecodeError(f"Malformed sagemaker response: {e!r}") from e


class SageMakerEndpointLLM(AioBotoClientMixin, BaseLLM[SageMakerExtraConfig]):
    """
    SageMaker Endpoint 补全模型

    endpoint 名称默认取 model_name，可以通过 extra_config.endpoint_name 覆盖
    """

    model_type = ModelTypeEnum.sagemaker
    service_name = "sagemaker-runtime"

    def __init__(
        self,
        *args: Any,
        content_handler: ContentHandler | None = None,
        client: Any = None,
        **kwargs: Any,
    ):
        """
        Args:
            content_handler: 请求/响应格式转换，默认 JsonContentHandler
            client: 外部注入的 sagemaker-runtime client（需要实现 invoke_endpoint）
        """
        super().__init__(*args, **kwargs)
        self.content_handler = content_handler or JsonContentHandler()
        self.endpoint_name = self.extra_config.endpoint_name or self.model_name
        if not self.endpoint_name:
            raise LLMConfigError("sagemaker requires endpoint_name")
        self._init_aws_client(client)

    async def aclose(self) -> None:
        await self._close_aws_client()
        await super().aclose()

    def build_model_params(self, options: GenerateOptions) -> dict[str, Any]:
        params = dict(self.extra_config.model_params)
        params.setdefault("max_new_tokens", options.max_tokens)
        params.setdefault("temperature", options.temperature)
        params.setdefault("top_p", options.top_p)
        if options.stop:
            params["stop"] = list(options.stop)
        return params

    async def _generate(self, prompt: str, options: GenerateOptions, run_manager: CallbackManager) -> ModelResult:
        body = self.content_handler.transform_input(prompt, self.build_model_params(options))
        client = await self.client
        try:
            response = await client.invoke_endpoint(
                EndpointName=self.endpoint_name,
                ContentType=self.content_handler.content_type,
                Accept=self.content_handler.accept,
                Body=body,
            )
            payload = await response["Body"].read()
        except ClientError as e:
            logger.error(f"SageMaker API error: {e}")
            raise convert_client_error(e, "SageMaker") from e
        except ReadTimeoutError as e:
            logger.error(f"SageMaker request timeout: {e}")
            raise LLMTimeoutError(f"SageMaker request timeout: {e}") from e
        except BotoCoreError as e:
            logger.error(f"SageMaker request error: {e}")
            raise LLMAPIError(f"SageMaker request error: {e}") from e

        text = self.content_handler.transform_output(payload)
        return ModelResult(generations=[Generation(text=text)], llm_output={"endpoint_name": self.endpoint_name})


__all__ = [
    "ContentHandler",
    "JsonContentHandler",
    "SageMakerEndpointLLM",
]
