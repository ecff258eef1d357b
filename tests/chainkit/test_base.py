"""
模型基类测试

使用 FakeLLM / FakeChatModel 验证基类的公共行为
"""

import pytest

from chainkit.base import BaseLanguageModel, accumulate_stream
from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.exceptions import LLMConfigError
from chainkit.providers.fake import FakeChatModel, FakeLLM
from chainkit.providers.openai import OpenAILLM
from chainkit.types import (
    ChatMessage,
    ChatPromptValue,
    FakeExtraConfig,
    GenerateOptions,
    StreamChunk,
    StringPromptValue,
    TokenUsage,
)


class RecordingHandler(BaseCallbackHandler):
    """按顺序记录回调事件"""

    def __init__(self):
        self.events: list[tuple] = []

    async def on_llm_start(self, model_name, prompts):
        self.events.append(("start", model_name, tuple(prompts)))

    async def on_llm_new_token(self, token):
        self.events.append(("token", token))

    async def on_llm_end(self, result):
        self.events.append(("end", result.text))

    async def on_llm_error(self, error):
        self.events.append(("error", type(error).__name__))


async def _chunks(items: list[StreamChunk]):
    for item in items:
        yield item


@pytest.mark.asyncio
class TestAccumulateStream:
    """测试流式结果累积"""

    async def test_concatenates_text_and_sums_usage(self):
        """测试文本拼接和 usage 求和"""
        chunks = [
            StreamChunk(text="Hel", usage=TokenUsage(prompt_tokens=3, total_tokens=3)),
            StreamChunk(text="lo", usage=TokenUsage(completion_tokens=2, total_tokens=2), finish_reason="stop"),
        ]
        handler = RecordingHandler()
        text, usage, finish_reason = await accumulate_stream(_chunks(chunks), CallbackManager([handler]))

        assert text == "Hello"
        assert usage == TokenUsage(prompt_tokens=3, completion_tokens=2, total_tokens=5)
        assert finish_reason == "stop"
        assert handler.events == [("token", "Hel"), ("token", "lo")]
        print("✓ 流式累积测试通过")

    async def test_stream_without_finish_signal(self):
        """测试没有结束信号时返回已累积文本"""
        text, usage, finish_reason = await accumulate_stream(_chunks([StreamChunk(text="partial")]))
        assert text == "partial"
        assert usage == TokenUsage()
        assert finish_reason is None


@pytest.mark.asyncio
class TestBaseLLM:
    """测试补全模型基类"""

    async def test_generate_applies_default_options(self):
        """测试调用参数用模型默认值补全"""
        llm = FakeLLM(responses=["ok"], max_tokens=128, default_temperature=0.2)
        await llm.generate("hi", GenerateOptions(stop=["\n"]))

        options = llm.options[0]
        assert options.stop == ["\n"]
        assert options.max_tokens == 128
        assert options.temperature == 0.2
        assert options.top_p == 1.0

    async def test_explicit_options_win(self):
        """测试显式参数优先于默认值"""
        llm = FakeLLM(responses=["ok"])
        await llm.generate("hi", GenerateOptions(temperature=0.0, max_tokens=5))
        assert llm.options[0].temperature == 0.0
        assert llm.options[0].max_tokens == 5

    async def test_callback_order(self):
        """测试非流式调用的回调顺序"""
        handler = RecordingHandler()
        llm = FakeLLM(responses=["answer"])
        await llm.generate("question", callbacks=[handler])

        assert handler.events == [("start", "fake-llm", ("question",)), ("end", "answer")]

    async def test_streaming_generate_fires_tokens_before_end(self):
        """测试流式调用：先逐 token 回调，再 on_llm_end"""
        handler = RecordingHandler()
        llm = FakeLLM(responses=["Hello world"], streaming=True, callbacks=[handler])
        result = await llm.generate("hi")

        assert result.text == "Hello world"
        assert result.token_usage is not None
        assert handler.events[0][0] == "start"
        assert handler.events[1:3] == [("token", "Hello "), ("token", "world")]
        assert handler.events[-1] == ("end", "Hello world")
        print("✓ 流式回调顺序测试通过")

    async def test_astream_yields_chunks(self):
        """测试 astream 直接产出响应块"""
        llm = FakeLLM(responses=["a b c"])
        chunks = [chunk async for chunk in llm.astream("hi")]
        assert "".join(chunk.text for chunk in chunks) == "a b c"
        assert chunks[-1].finish_reason == "stop"

    async def test_generate_prompt_uses_string_view(self):
        """测试补全模型使用 PromptValue 的字符串视图"""
        llm = FakeLLM(responses=["ok"])
        value = ChatPromptValue(messages=[ChatMessage.system("s"), ChatMessage.human("h")])
        await llm.generate_prompt(value)
        assert llm.prompts == ["System: s\nHuman: h"]

    async def test_error_callback_and_propagation(self):
        """测试异常触发 on_llm_error 并原样抛出"""

        class BrokenLLM(FakeLLM):
            async def _generate(self, prompt, options, run_manager):
                raise RuntimeError("boom")

        handler = RecordingHandler()
        llm = BrokenLLM(callbacks=[handler])
        with pytest.raises(RuntimeError, match="boom"):
            await llm.generate("hi")
        assert handler.events[-1] == ("error", "RuntimeError")


@pytest.mark.asyncio
class TestBaseChatModel:
    """测试聊天模型基类"""

    async def test_generate_returns_ai_message(self, sample_chat_messages):
        """测试返回 ai 消息"""
        chat = FakeChatModel(responses=["I'm fine"])
        result = await chat.generate(sample_chat_messages)

        assert result.text == "I'm fine"
        assert result.generations[0].message == ChatMessage.ai("I'm fine")
        assert chat.messages[0] == sample_chat_messages

    async def test_generate_prompt_uses_message_view(self):
        """测试聊天模型使用 PromptValue 的消息视图"""
        chat = FakeChatModel(responses=["ok"])
        await chat.generate_prompt(StringPromptValue(text="hello"))
        assert chat.messages[0] == [ChatMessage.human("hello")]

    async def test_streaming_chat(self):
        """测试聊天模型流式调用"""
        handler = RecordingHandler()
        chat = FakeChatModel(responses=["one two"], streaming=True)
        result = await chat.generate([ChatMessage.human("hi")], callbacks=[handler])
        assert result.text == "one two"
        assert [e for e in handler.events if e[0] == "token"] == [("token", "one "), ("token", "two")]


class TestBaseLanguageModel:
    """测试配置和工具方法"""

    def test_extra_config_type_inference(self):
        """测试从泛型参数推断 extra_config 类型"""
        llm = FakeLLM(extra_config={"responses": ["x"]})
        assert isinstance(llm.extra_config, FakeExtraConfig)
        assert llm.responses == ["x"]

    def test_requires_api_key(self, monkeypatch):
        """测试缺少 API key 时构造失败"""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(LLMConfigError):
            OpenAILLM(model_name="gpt-3.5-turbo-instruct")

    def test_api_key_from_env(self, monkeypatch):
        """测试从环境变量读取 API key"""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        llm = OpenAILLM(model_name="gpt-3.5-turbo-instruct")
        assert llm.api_key == "sk-env"

    def test_extract_by_path(self):
        """测试按路径提取响应字段"""
        data = {"generations": [{"text": "hi"}]}
        assert BaseLanguageModel._extract_by_path(data, "generations.0.text") == "hi"
        assert BaseLanguageModel._extract_by_path(data, "generations.3.text") is None
        assert BaseLanguageModel._extract_by_path(data, "missing.path") is None

    def test_retry_delay_strategies(self):
        """测试重试延迟策略"""
        llm = FakeLLM(extra_config={"retry_strategy": "linear"})
        assert llm.get_retry_delay(3) == 6.0

        llm = FakeLLM()
        assert llm.get_retry_delay(2) == 4.0

    def test_should_retry(self):
        """测试可重试状态码判断"""
        llm = FakeLLM(max_retries=2)
        assert llm.should_retry(429, 0) is True
        assert llm.should_retry(400, 0) is False
        assert llm.should_retry(503, 2) is False

    def test_count_tokens(self):
        """测试默认 tokenizer"""
        llm = FakeLLM()
        assert llm.count_tokens("abcdefgh") == 2
