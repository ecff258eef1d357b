"""
模型泛型基类

提供 completion 模型和 chat 模型的统一抽象接口和默认实现
"""

import os
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar
from collections.abc import AsyncIterator, Sequence

import httpx
from loguru import logger

from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.exceptions import LLMCapabilityError, LLMConfigError
from chainkit.tokenizer import BaseTokenizer, SimpleTokenizer
from chainkit.types import (
    BaseExtraConfig,
    ChatMessage,
    GenerateOptions,
    Generation,
    ModelResult,
    ModelTypeEnum,
    PromptValue,
    StreamChunk,
    TokenUsage,
    stringify_chat_messages,
)
from util.general import truncate_content

ExtraConfigT = TypeVar("ExtraConfigT", bound=BaseExtraConfig)


async def accumulate_stream(
    chunks: AsyncIterator[StreamChunk],
    run_manager: CallbackManager | None = None,
) -> tuple[str, TokenUsage, str | None]:
    """消费流式响应并累积结果

    每个 chunk 先触发 on_llm_new_token 回调，再拼接到结果中；
    流在没有结束信号的情况下结束时，返回已累积的文本，finish_reason 为 None

    Args:
        chunks: 流式响应块
        run_manager: 回调管理器

    Returns:
        (完整文本, 累计 token 使用量, 结束原因)
    """
    parts: list[str] = []
    usage = TokenUsage()
    finish_reason: str | None = None

    async for chunk in chunks:
        if run_manager is not None and chunk.text:
            await run_manager.on_llm_new_token(chunk.text)
        parts.append(chunk.text)
        if chunk.usage is not None:
            usage = usage + chunk.usage
        if chunk.finish_reason:
            finish_reason = chunk.finish_reason

    return "".join(parts), usage, finish_reason


class BaseLanguageModel(Generic[ExtraConfigT], ABC):
    """
    模型抽象基类（泛型）

    类型参数:
        ExtraConfigT: extra_config 的具体类型

    设计原则:
        1. 提供大量默认实现，子类只需在必要时覆盖
        2. 通过配置化处理 provider 差异
        3. 不保存任何单次调用的状态，同一实例可以被并发调用
    """

    model_type: ClassVar[ModelTypeEnum]

    extra_config: ExtraConfigT

    def __init__(
        self,
        model_name: str,
        max_tokens: int = 256,
        api_key: str | None = None,
        base_url: str | None = None,
        default_temperature: float = 0.7,
        default_top_p: float = 1.0,
        max_retries: int = 3,
        timeout: int = 60,
        streaming: bool = False,
        extra_config: dict[str, Any] | None = None,
        tokenizer: BaseTokenizer | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        初始化模型

        Args:
            model_name: 模型名称
            max_tokens: 默认最大输出token数
            api_key: API密钥（未配置时读取 extra_config.api_key_env 指定的环境变量）
            base_url: API基础URL
            default_temperature: 默认温度参数
            default_top_p: 默认top_p
            max_retries: 最大重试次数
            timeout: 请求超时时间(秒)
            streaming: 是否使用流式调用（逐 token 触发回调）
            extra_config: provider特定配置（dict），内部会转换成具体的 pydantic model
            tokenizer: token 计数器，默认 SimpleTokenizer
            callbacks: 构造时绑定的回调
            verbose: 是否附加日志回调
            http_client: 外部注入的 httpx client

        Raises:
            LLMConfigError: 配置无效
        """
        self.model_name = model_name
        self.max_tokens = max_tokens
        self.base_url = base_url

        self.default_temperature = default_temperature
        self.default_top_p = default_top_p
        self.max_retries = max_retries
        self.timeout = timeout
        self.streaming = streaming

        self.tokenizer = tokenizer or SimpleTokenizer()
        self.callbacks: list[BaseCallbackHandler] = list(callbacks or [])
        self.verbose = verbose

        self._http_client = http_client
        self._owns_http_client = False

        self.extra_config: ExtraConfigT = self._convert_extra_config(extra_config or {})

        if not api_key and self.extra_config.api_key_env:
            api_key = os.environ.get(self.extra_config.api_key_env)
        self.api_key = api_key

        self._validate_config()

        logger.info(f"Initialized model: {self.model_type.value}/{self.model_name}, max_tokens={self.max_tokens}")

    def _validate_config(self) -> None:
        """验证配置"""
        if self.extra_config.requires_base_url and not self.base_url:
            logger.error(f"Configuration validation failed: {self.model_type.value} requires base_url")
            raise LLMConfigError(f"{self.model_type.value} requires base_url")

        if self.extra_config.requires_auth and not self.api_key:
            logger.error(f"Configuration validation failed: {self.model_type.value} requires api_key")
            raise LLMConfigError(f"{self.model_type.value} requires api_key")

        logger.debug(f"Configuration validated for {self.model_type.value}/{self.model_name}")

    def _get_extra_config_cls(self) -> type[BaseExtraConfig]:
        """
        从泛型参数自动提取 extra_config 类型

        子类通过 `class OpenAIChatModel(BaseChatModel[OpenAIExtraConfig])` 声明泛型参数，
        沿 MRO 查找第一个声明了具体类型的 `__orig_bases__`

        Returns:
            extra_config 的 pydantic model 类型
        """
        for klass in type(self).__mro__:
            for base in klass.__dict__.get("__orig_bases__", ()):
                for arg in getattr(base, "__args__", ()):
                    if isinstance(arg, type) and issubclass(arg, BaseExtraConfig):
                        return arg

        logger.warning(
            f"Unable to resolve extra_config type for {type(self).__name__}, falling back to BaseExtraConfig",
        )
        return BaseExtraConfig

    def _convert_extra_config(self, extra_config_dict: dict[str, Any]) -> ExtraConfigT:
        """将 dict 转换成具体的 pydantic model 类型"""
        extra_config_cls = self._get_extra_config_cls()
        return extra_config_cls.from_dict(extra_config_dict)  # type: ignore

    # ========== 调用参数 ==========

    def resolve_options(self, options: GenerateOptions | None) -> GenerateOptions:
        """用模型默认值补全调用参数

        Args:
            options: 单次调用参数

        Returns:
            补全后的参数（新实例）
        """
        options = options or GenerateOptions()
        return options.model_copy(
            update={
                "temperature": options.temperature if options.temperature is not None else self.default_temperature,
                "max_tokens": options.max_tokens if options.max_tokens is not None else self.max_tokens,
                "top_p": options.top_p if options.top_p is not None else self.default_top_p,
            },
        )

    def get_callback_manager(self, callbacks: Sequence[BaseCallbackHandler] | None = None) -> CallbackManager:
        """合并构造时和调用时的回调"""
        return CallbackManager.configure(self.callbacks, callbacks, verbose=self.verbose)

    # ========== token 计数 ==========

    def count_tokens(self, text: str) -> int:
        return self.tokenizer.count_tokens(text)

    def count_message_tokens(self, messages: Sequence[ChatMessage]) -> int:
        return self.tokenizer.count_message_tokens(messages)

    # ========== 通用工具方法 ==========

    def get_httpx_client(self) -> httpx.AsyncClient:
        """获取 httpx client

        优先使用外部注入的 client，否则懒加载一个由模型自己持有的 client
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_http_client = True
        return self._http_client

    async def aclose(self) -> None:
        """释放模型持有的连接资源"""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
            self._owns_http_client = False

    # ========== 请求构建辅助方法（用于 httpx 实现） ==========

    def build_endpoint_url(self) -> str:
        """
        构建 API 端点 URL

        默认实现: {base_url}{endpoint}
        """
        base_url = (self.base_url or "").rstrip("/")
        endpoint = self.extra_config.endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint

        query_params = self.extra_config.query_params
        if query_params:
            query_string = "&".join(f"{k}={v}" for k, v in query_params.items())
            endpoint = f"{endpoint}?{query_string}"

        return f"{base_url}{endpoint}"

    def build_auth_headers(self) -> dict[str, str]:
        """构建认证头（通过 extra_config 配置）"""
        if not self.extra_config.requires_auth:
            return {}

        if not self.api_key:
            raise LLMConfigError(f"{self.model_type.value} requires api_key")

        auth_type = self.extra_config.auth_type
        value = f"{auth_type} {self.api_key}" if auth_type else self.api_key
        return {self.extra_config.auth_header: value}

    def build_request_headers(self) -> dict[str, str]:
        """构建完整的请求头"""
        headers = {"Content-Type": "application/json"}
        headers.update(self.build_auth_headers())
        headers.update(self.extra_config.headers)
        return headers

    # ========== 重试逻辑（配置驱动） ==========

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """判断是否应该重试（从 extra_config 读取）"""
        if attempt >= self.max_retries:
            return False
        should_retry = status_code in self.extra_config.retry_on_status_codes
        if should_retry:
            logger.debug(f"Should retry: status_code={status_code}, attempt={attempt}/{self.max_retries}")
        return should_retry

    def get_retry_delay(self, attempt: int) -> float:
        """获取重试延迟（从 extra_config 读取）"""
        strategy = self.extra_config.retry_strategy
        if strategy == "exponential":
            delay = float(2**attempt)
        elif strategy == "linear":
            delay = float(attempt * 2)
        else:  # constant
            delay = 1.0

        logger.debug(f"Retry delay calculated: strategy={strategy}, attempt={attempt}, delay={delay}s")
        return delay

    # ========== 响应解析辅助方法 ==========

    @staticmethod
    def _extract_by_path(data: Any, path: str) -> Any:
        """通过点分隔路径提取数据，数字段用于列表下标

        Examples:
            >>> BaseLanguageModel._extract_by_path({"a": [{"b": 1}]}, "a.0.b")
            1
        """
        result = data
        for key in path.split("."):
            if isinstance(result, dict):
                result = result.get(key)
            elif isinstance(result, list) and key.lstrip("-").isdigit():
                index = int(key)
                if not -len(result) <= index < len(result):
                    return None
                result = result[index]
            else:
                return None
            if result is None:
                return None
        return result

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"model_name={self.model_name}, "
            f"model_type={self.model_type.value}, "
            f"max_tokens={self.max_tokens})"
        )


class BaseLLM(BaseLanguageModel[ExtraConfigT]):
    """文本补全模型基类：输入是单个提示词字符串"""

    async def generate(
        self,
        prompt: str,
        options: GenerateOptions | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> ModelResult:
        """
        生成补全

        Args:
            prompt: 提示词
            options: 调用参数（stop、采样参数等，provider 不支持的参数会被忽略）
            callbacks: 本次调用附加的回调

        Returns:
            模型调用结果
        """
        run_manager = self.get_callback_manager(callbacks)
        options = self.resolve_options(options)

        logger.debug(
            f"{self.model_type.value} generate - model: {self.model_name}, prompt: {truncate_content(prompt)}, "
            f"streaming: {self.streaming}",
        )

        await run_manager.on_llm_start(self.model_name, [prompt])
        try:
            if self.streaming:
                result = await self._generate_from_stream(self._stream(prompt, options), run_manager)
            else:
                result = await self._generate(prompt, options, run_manager)
        except Exception as e:
            await run_manager.on_llm_error(e)
            raise
        await run_manager.on_llm_end(result)

        logger.debug(f"{self.model_type.value} result - text: {truncate_content(result.text)}")
        return result

    async def generate_prompt(
        self,
        prompt_value: PromptValue,
        options: GenerateOptions | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> ModelResult:
        return await self.generate(prompt_value.to_string(), options, callbacks)

    async def astream(self, prompt: str, options: GenerateOptions | None = None) -> AsyncIterator[StreamChunk]:
        """流式生成补全

        Yields:
            流式响应块
        """
        async for chunk in self._stream(prompt, self.resolve_options(options)):
            yield chunk

    @abstractmethod
    async def _generate(self, prompt: str, options: GenerateOptions, run_manager: CallbackManager) -> ModelResult:
        """发起非流式请求，由子类实现"""
        raise NotImplementedError

    async def _stream(self, prompt: str, options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        """发起流式请求，不支持流式的 provider 不需要覆盖"""
        raise LLMCapabilityError(f"{self.model_type.value} does not support streaming")
        yield  # pragma: no cover

    async def _generate_from_stream(
        self,
        chunks: AsyncIterator[StreamChunk],
        run_manager: CallbackManager,
    ) -> ModelResult:
        text, usage, finish_reason = await accumulate_stream(chunks, run_manager)
        return ModelResult(
            generations=[Generation(text=text, info={"finish_reason": finish_reason})],
            llm_output={"token_usage": usage.model_dump(), "model_name": self.model_name},
        )


class BaseChatModel(BaseLanguageModel[ExtraConfigT]):
    """聊天模型基类：输入是消息列表"""

    async def generate(
        self,
        messages: Sequence[ChatMessage],
        options: GenerateOptions | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> ModelResult:
        """
        生成回复消息

        Args:
            messages: 消息列表（顺序保持不变）
            options: 调用参数
            callbacks: 本次调用附加的回调

        Returns:
            模型调用结果，generations[0].message 是 ai 消息
        """
        run_manager = self.get_callback_manager(callbacks)
        options = self.resolve_options(options)
        messages = list(messages)

        logger.debug(
            f"{self.model_type.value} chat - model: {self.model_name}, messages: {len(messages)}, "
            f"streaming: {self.streaming}",
        )

        await run_manager.on_llm_start(self.model_name, [stringify_chat_messages(messages)])
        try:
            if self.streaming:
                result = await self._generate_from_stream(self._stream(messages, options), run_manager)
            else:
                result = await self._generate(messages, options, run_manager)
        except Exception as e:
            await run_manager.on_llm_error(e)
            raise
        await run_manager.on_llm_end(result)

        logger.debug(f"{self.model_type.value} chat result - text: {truncate_content(result.text)}")
        return result

    async def generate_prompt(
        self,
        prompt_value: PromptValue,
        options: GenerateOptions | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> ModelResult:
        return await self.generate(prompt_value.to_messages(), options, callbacks)

    async def astream(
        self,
        messages: Sequence[ChatMessage],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        async for chunk in self._stream(list(messages), self.resolve_options(options)):
            yield chunk

    @abstractmethod
    async def _generate(
        self,
        messages: list[ChatMessage],
        options: GenerateOptions,
        run_manager: CallbackManager,
    ) -> ModelResult:
        raise NotImplementedError

    async def _stream(self, messages: list[ChatMessage], options: GenerateOptions) -> AsyncIterator[StreamChunk]:
        raise LLMCapabilityError(f"{self.model_type.value} does not support streaming")
        yield  # pragma: no cover

    async def _generate_from_stream(
        self,
        chunks: AsyncIterator[StreamChunk],
        run_manager: CallbackManager,
    ) -> ModelResult:
        text, usage, finish_reason = await accumulate_stream(chunks, run_manager)
        return ModelResult(
            generations=[
                Generation(text=text, message=ChatMessage.ai(text), info={"finish_reason": finish_reason}),
            ],
            llm_output={"token_usage": usage.model_dump(), "model_name": self.model_name},
        )


LanguageModel = BaseLLM | BaseChatModel


__all__ = [
    "ExtraConfigT",
    "accumulate_stream",
    "BaseLanguageModel",
    "BaseLLM",
    "BaseChatModel",
    "LanguageModel",
]
