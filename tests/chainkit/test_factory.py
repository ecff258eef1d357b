"""
模型工厂测试

模型配置来自 etc/test.yaml
"""

import asyncio

import pytest

from chainkit.exceptions import LLMModelNotFoundError
from chainkit.factory import LLMModelFactory
from chainkit.providers.fake import FakeChatModel, FakeLLM
from chainkit.types import ModelConfig, ModelTypeEnum
from config.main import local_configs


@pytest.fixture(autouse=True)
def clear_factory_cache():
    LLMModelFactory.clear_cache()
    yield
    LLMModelFactory.clear_cache()


class TestFactoryRegistry:
    """测试注册表"""

    def test_all_types_registered(self):
        """测试所有模型类型都已注册"""
        for model_type in ModelTypeEnum:
            assert LLMModelFactory.has_model(model_type)

    def test_get_cache_info(self):
        info = LLMModelFactory.get_cache_info()
        assert info["cached_count"] == 0
        assert "fake" in info["registered_models"]


class TestLocalConfigs:
    """测试配置加载"""

    def test_models_loaded_from_yaml(self):
        """测试模型配置名称取自 yaml key"""
        assert "fake-default" in local_configs.models
        assert local_configs.models["fake-default"].name == "fake-default"
        assert local_configs.models["fake-default"].is_default is True


@pytest.mark.asyncio
class TestFactoryCreate:
    """测试创建模型实例"""

    async def test_create_by_name(self):
        """测试按配置名称创建"""
        model = await LLMModelFactory.create_by_name("fake-chat")
        assert isinstance(model, FakeChatModel)
        assert model.responses == ["configured chat response"]

    async def test_create_default(self):
        """测试创建默认模型"""
        model = await LLMModelFactory.create_default()
        assert isinstance(model, FakeLLM)
        result = await model.generate("hi")
        assert result.text == "configured response"

    async def test_cache(self):
        """测试实例缓存"""
        first = await LLMModelFactory.create_by_name("fake-default")
        second = await LLMModelFactory.create_by_name("fake-default")
        assert first is second

        uncached = await LLMModelFactory.create_by_name("fake-default", use_cache=False)
        assert uncached is not first

    async def test_concurrent_create_returns_same_instance(self):
        """测试并发创建同一配置只产生一个实例"""
        models = await asyncio.gather(*[LLMModelFactory.create_by_name("fake-default") for _ in range(5)])
        assert all(model is models[0] for model in models)

    async def test_anonymous_config_not_cached(self):
        """测试没有名称的配置不缓存"""
        config = ModelConfig(type=ModelTypeEnum.fake, model_name="fake-llm")
        await LLMModelFactory.create(config)
        assert LLMModelFactory.get_cache_info()["cached_count"] == 0

    async def test_unknown_name(self):
        """测试不存在的配置名称"""
        with pytest.raises(LLMModelNotFoundError):
            await LLMModelFactory.create_by_name("missing-model")

    async def test_close_all(self):
        """测试关闭所有实例后清空缓存"""
        await LLMModelFactory.create_by_name("fake-default")
        await LLMModelFactory.close_all()
        assert LLMModelFactory.get_cache_info()["cached_count"] == 0
