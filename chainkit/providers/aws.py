"""
aiobotocore client 的懒加载

Bedrock 和 SageMaker 共用
"""

from typing import Any

from aiobotocore.config import AioConfig
from aiobotocore.session import AioSession
from botocore.exceptions import ClientError

from chainkit.exceptions import LLMAPIError, LLMRateLimitError


class AioBotoClientMixin:
    """为模型提供懒加载的 aiobotocore client

    子类需要定义 service_name，并提供 extra_config 中的 region_name 和 aws 凭证字段
    """

    service_name: str

    def _init_aws_client(self, client: Any = None) -> None:
        self._client = client
        self._client_creator: Any = None

    @property
    async def client(self) -> Any:
        """懒加载 aiobotocore client"""
        if self._client is None:
            extra_config = self.extra_config  # type: ignore[attr-defined]
            config = AioConfig(
                connect_timeout=self.timeout,  # type: ignore[attr-defined]
                read_timeout=self.timeout,  # type: ignore[attr-defined]
                retries={"max_attempts": self.max_retries},  # type: ignore[attr-defined]
            )
            session = AioSession()
            self._client_creator = session.create_client(
                self.service_name,
                region_name=extra_config.region_name,
                aws_access_key_id=extra_config.aws_access_key_id,
                aws_secret_access_key=extra_config.aws_secret_access_key,
                aws_session_token=extra_config.aws_session_token,
                endpoint_url=self.base_url,  # type: ignore[attr-defined]
                config=config,
            )
            self._client = await self._client_creator.__aenter__()
        return self._client

    async def _close_aws_client(self) -> None:
        if self._client_creator is not None:
            await self._client_creator.__aexit__(None, None, None)
            self._client_creator = None
            self._client = None


def convert_client_error(e: ClientError, service: str) -> LLMAPIError:
    """将 botocore ClientError 转换为统一的 provider 异常"""
    error = e.response.get("Error", {})
    code = error.get("Code", "")
    status_code = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    message = f"{service} API error ({code}): {error.get('Message', str(e))}"
    if code == "ThrottlingException":
        return LLMRateLimitError(message, status_code=status_code)
    return LLMAPIError(message, status_code=status_code)


__all__ = [
    "AioBotoClientMixin",
    "convert_client_error",
]
