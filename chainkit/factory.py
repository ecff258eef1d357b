"""
模型工厂类

根据 ModelConfig 动态创建模型实例。
支持模型注册、实例缓存、并发安全等功能。
"""

import asyncio
from typing import Any

from loguru import logger

from chainkit.base import BaseChatModel, BaseLLM, LanguageModel
from chainkit.exceptions import LLMModelNotFoundError
from chainkit.providers.anthropic import AnthropicChatModel
from chainkit.providers.bedrock import BedrockLLM
from chainkit.providers.cohere import CohereLLM
from chainkit.providers.fake import FakeChatModel, FakeLLM
from chainkit.providers.openai import OpenAIChatModel, OpenAILLM
from chainkit.providers.sagemaker import SageMakerEndpointLLM
from chainkit.types import ModelConfig, ModelTypeEnum


class LLMModelFactory:
    """模型工厂类

    负责根据配置动态创建模型实例，配置可以直接传入，也可以按名称从 etc/<environment>.yaml 读取。

    使用示例:
        >>> model = await LLMModelFactory.create_by_name("gpt-4o-mini")
        >>> chain = LLMChain(llm=model, prompt=PromptTemplate("{{question}}"))
    """

    # 模型类型到实现类的映射
    _models: dict[ModelTypeEnum, type[BaseLLM] | type[BaseChatModel]] = {}

    # 模型实例缓存（按配置名称）
    _instances: dict[str, LanguageModel] = {}

    # 锁，用于防止并发创建同一实例
    _locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def register(cls, model_type: ModelTypeEnum, model_class: type[BaseLLM] | type[BaseChatModel]) -> None:
        """注册模型类型

        Args:
            model_type: 模型类型标识
            model_class: 实现类，已注册的类型会被覆盖

        Example:
            >>> LLMModelFactory.register(ModelTypeEnum.openai_chat, OpenAIChatModel)
        """
        if model_type in cls._models:
            logger.warning(f"Model type {model_type.value} already registered, overriding")
        cls._models[model_type] = model_class

    @classmethod
    async def create(cls, config: ModelConfig, use_cache: bool = True) -> LanguageModel:
        """创建模型实例

        Args:
            config: 模型配置
            use_cache: 是否使用缓存（没有名称的配置不缓存）

        Returns:
            模型实例

        Raises:
            LLMModelNotFoundError: 不支持的模型类型
            LLMConfigError: 配置无效
        """
        model_cls = cls._models.get(config.type)
        if not model_cls:
            available_types = ", ".join([t.value for t in cls._models.keys()])
            raise LLMModelNotFoundError(
                f"Unsupported model type: {config.type.value}, available types: {available_types}",
            )

        if not use_cache or not config.name:
            return cls._create_instance(model_cls, config)

        if config.name in cls._instances:
            return cls._instances[config.name]

        if config.name not in cls._locks:
            cls._locks[config.name] = asyncio.Lock()

        async with cls._locks[config.name]:
            # 等待锁时可能已被其他协程创建
            if config.name in cls._instances:
                return cls._instances[config.name]

            model = cls._create_instance(model_cls, config)
            cls._instances[config.name] = model
            return model

    @classmethod
    def _create_instance(
        cls,
        model_cls: type[BaseLLM] | type[BaseChatModel],
        config: ModelConfig,
    ) -> LanguageModel:
        logger.debug(f"Creating model instance: {config.name or '<anonymous>'} ({config.type.value}/{config.model_name})")
        return model_cls(
            model_name=config.model_name,
            max_tokens=config.max_tokens,
            api_key=config.api_key,
            base_url=config.base_url,
            default_temperature=config.default_temperature,
            default_top_p=config.default_top_p,
            max_retries=config.max_retries,
            timeout=config.timeout,
            streaming=config.streaming,
            extra_config=config.extra_config,
            verbose=config.verbose,
        )

    @classmethod
    def clear_cache(cls, name: str | None = None) -> None:
        """清除模型实例缓存

        Args:
            name: 要清除的配置名称，如果为 None 则清除所有缓存
        """
        if name is None:
            cls._instances.clear()
            cls._locks.clear()
        else:
            cls._instances.pop(name, None)
            cls._locks.pop(name, None)

    @classmethod
    def has_model(cls, model_type: ModelTypeEnum) -> bool:
        return model_type in cls._models

    @classmethod
    def get_registered_model_types(cls) -> list[ModelTypeEnum]:
        return list(cls._models.keys())

    @classmethod
    def _get_model_configs(cls) -> dict[str, ModelConfig]:
        from config.main import local_configs

        return local_configs.models

    @classmethod
    async def create_by_name(cls, name: str, use_cache: bool = True) -> LanguageModel:
        """根据配置名称创建模型实例

        Args:
            name: etc/<environment>.yaml 中 models 下的名称
            use_cache: 是否使用缓存

        Raises:
            LLMModelNotFoundError: 配置不存在

        Example:
            >>> model = await LLMModelFactory.create_by_name("gpt-4o-mini")
        """
        config = cls._get_model_configs().get(name)
        if config is None:
            raise LLMModelNotFoundError(f"Model config '{name}' not found")
        return await cls.create(config, use_cache=use_cache)

    @classmethod
    async def create_default(cls, use_cache: bool = True) -> LanguageModel:
        """创建默认模型实例

        没有标记 is_default 的配置时使用第一个配置

        Raises:
            LLMModelNotFoundError: 没有任何模型配置
        """
        configs = list(cls._get_model_configs().values())
        config = next((c for c in configs if c.is_default), None)
        if config is None and configs:
            config = configs[0]
        if config is None:
            raise LLMModelNotFoundError("No model config available")
        return await cls.create(config, use_cache=use_cache)

    @classmethod
    def get_cache_info(cls) -> dict[str, Any]:
        """获取缓存信息

        Example:
            >>> LLMModelFactory.get_cache_info()
            {'cached_count': 1, 'cached_names': ['gpt-4o-mini'], 'registered_models': [...]}
        """
        return {
            "cached_count": len(cls._instances),
            "cached_names": list(cls._instances.keys()),
            "registered_models": [t.value for t in cls._models.keys()],
        }

    @classmethod
    async def close_all(cls) -> None:
        """关闭所有缓存的模型实例

        单个实例关闭失败时记录错误并继续关闭其余实例
        """
        for name, model in cls._instances.items():
            try:
                await model.aclose()
            except Exception as e:
                logger.error(f"Failed to close model instance {name}: {e}")

        cls.clear_cache()


LLMModelFactory.register(ModelTypeEnum.openai, OpenAILLM)
LLMModelFactory.register(ModelTypeEnum.openai_chat, OpenAIChatModel)
LLMModelFactory.register(ModelTypeEnum.anthropic, AnthropicChatModel)
LLMModelFactory.register(ModelTypeEnum.cohere, CohereLLM)
LLMModelFactory.register(ModelTypeEnum.bedrock, BedrockLLM)
LLMModelFactory.register(ModelTypeEnum.sagemaker, SageMakerEndpointLLM)
LLMModelFactory.register(ModelTypeEnum.fake, FakeLLM)
LLMModelFactory.register(ModelTypeEnum.fake_chat, FakeChatModel)


__all__ = [
    "LLMModelFactory",
]
