"""
OpenAI Provider 测试

单元测试通过 httpx.MockTransport 注入 SDK 的 http_client；集成测试需要 OPENAI_API_KEY
"""

import httpx
import orjson
import pytest

from chainkit.exceptions import LLMAPIError, LLMRateLimitError
from chainkit.providers.openai import OpenAIChatModel, OpenAILLM
from chainkit.types import ChatMessage, GenerateOptions, OpenAIExtraConfig

from .conftest import OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL_NAME, skip_if_no_api_key

BASE_URL = "https://api.openai.test/v1"

USAGE = {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}

COMPLETION_RESPONSE = {
    "id": "cmpl-1",
    "object": "text_completion",
    "created": 0,
    "model": "gpt-3.5-turbo-instruct",
    "choices": [{"text": "Hello", "index": 0, "logprobs": None, "finish_reason": "stop"}],
    "usage": USAGE,
}

CHAT_RESPONSE = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 0,
    "model": "gpt-4o-mini",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi!"}, "finish_reason": "stop"}],
    "usage": USAGE,
}


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestOpenAILLM:
    """测试 OpenAI 补全模型"""

    async def test_extra_config_type(self):
        """测试 extra_config 类型转换"""
        llm = OpenAILLM(model_name="gpt-3.5-turbo-instruct", api_key="sk-test", extra_config={"organization": "org"})
        assert isinstance(llm.extra_config, OpenAIExtraConfig)
        assert llm.extra_config.organization == "org"

    async def test_generate(self):
        """测试补全请求"""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=COMPLETION_RESPONSE)

        llm = OpenAILLM(
            model_name="gpt-3.5-turbo-instruct",
            api_key="sk-test",
            base_url=BASE_URL,
            max_retries=0,
            http_client=_mock_client(handler),
        )
        result = await llm.generate("Say hello", GenerateOptions(stop=["\n"]))

        assert result.text == "Hello"
        assert result.generations[0].info["finish_reason"] == "stop"
        assert result.token_usage is not None
        assert result.token_usage.total_tokens == 7

        body = orjson.loads(requests[0].content)
        assert requests[0].url.path.endswith("/completions")
        assert body["prompt"] == "Say hello"
        assert body["stop"] == ["\n"]
        assert body["max_tokens"] == 256
        print("✓ OpenAI 补全测试通过")

    async def test_rate_limit(self):
        """测试 429 转换为 LLMRateLimitError"""
        llm = OpenAILLM(
            model_name="gpt-3.5-turbo-instruct",
            api_key="sk-test",
            base_url=BASE_URL,
            max_retries=0,
            http_client=_mock_client(lambda request: httpx.Response(429, json={"error": {"message": "slow down"}})),
        )
        with pytest.raises(LLMRateLimitError) as exc_info:
            await llm.generate("hi")
        assert exc_info.value.status_code == 429


@pytest.mark.asyncio
class TestOpenAIChatModel:
    """测试 OpenAI 聊天模型"""

    async def test_convert_messages(self):
        """测试消息角色转换"""
        messages = [
            ChatMessage.system("s"),
            ChatMessage.human("h"),
            ChatMessage.ai("a"),
            ChatMessage.generic("tool", "t"),
        ]
        assert OpenAIChatModel._convert_messages(messages) == [
            {"role": "system", "content": "s"},
            {"role": "user", "content": "h"},
            {"role": "assistant", "content": "a"},
            {"role": "tool", "content": "t"},
        ]

    async def test_generate(self, sample_chat_messages):
        """测试聊天请求"""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=CHAT_RESPONSE)

        chat = OpenAIChatModel(
            model_name="gpt-4o-mini",
            api_key="sk-test",
            base_url=BASE_URL,
            max_retries=0,
            http_client=_mock_client(handler),
        )
        result = await chat.generate(sample_chat_messages)

        assert result.text == "Hi!"
        assert result.generations[0].message == ChatMessage.ai("Hi!")
        assert result.llm_output["model_name"] == "gpt-4o-mini"

        body = orjson.loads(requests[0].content)
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    async def test_server_error(self, sample_chat_messages):
        """测试 500 转换为 LLMAPIError"""
        chat = OpenAIChatModel(
            model_name="gpt-4o-mini",
            api_key="sk-test",
            base_url=BASE_URL,
            max_retries=0,
            http_client=_mock_client(lambda request: httpx.Response(500, json={"error": {"message": "boom"}})),
        )
        with pytest.raises(LLMAPIError) as exc_info:
            await chat.generate(sample_chat_messages)
        assert exc_info.value.status_code == 500

    async def test_aclose_closes_sdk_client(self):
        """测试关闭模型时释放 SDK 自己创建的连接"""
        chat = OpenAIChatModel(model_name="gpt-4o-mini", api_key="sk-test", base_url=BASE_URL)
        assert not chat._client.is_closed()
        await chat.aclose()
        assert chat._client.is_closed()

    async def test_aclose_keeps_injected_http_client(self):
        """测试外部注入的 http_client 由调用方负责关闭"""
        http_client = _mock_client(lambda request: httpx.Response(200, json=CHAT_RESPONSE))
        chat = OpenAIChatModel(model_name="gpt-4o-mini", api_key="sk-test", base_url=BASE_URL, http_client=http_client)
        await chat.aclose()
        assert not http_client.is_closed
        await http_client.aclose()


@skip_if_no_api_key
@pytest.mark.asyncio
class TestOpenAIIntegration:
    """OpenAI 集成测试（需要真实 API key）"""

    async def test_chat_generate(self):
        """测试真实聊天调用"""
        chat = OpenAIChatModel(
            model_name=OPENAI_MODEL_NAME or "gpt-4o-mini",
            api_key=OPENAI_API_KEY,
            base_url=OPENAI_BASE_URL,
            max_tokens=20,
        )
        result = await chat.generate([ChatMessage.human("Reply with the single word: pong")])
        print(f"✓ OpenAI 响应: {result.text}")
        assert result.text
        assert result.token_usage is not None
        await chat.aclose()

    async def test_chat_stream(self):
        """测试真实流式调用"""
        chat = OpenAIChatModel(
            model_name=OPENAI_MODEL_NAME or "gpt-4o-mini",
            api_key=OPENAI_API_KEY,
            base_url=OPENAI_BASE_URL,
            max_tokens=20,
        )
        chunks = [chunk async for chunk in chat.astream([ChatMessage.human("Count from 1 to 3")])]
        assert "".join(chunk.text for chunk in chunks)
