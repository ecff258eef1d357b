"""
FakeLLM / FakeChatModel 测试
"""

import pytest

from chainkit.types import ChatMessage


@pytest.mark.asyncio
class TestFakeLLM:
    """测试 FakeLLM"""

    async def test_cycles_responses(self, fake_llm):
        """测试按顺序循环返回"""
        fake_llm.responses = ["one", "two"]
        texts = [(await fake_llm.generate(f"p{i}")).text for i in range(3)]
        assert texts == ["one", "two", "one"]
        assert fake_llm.call_count == 3
        assert fake_llm.prompts == ["p0", "p1", "p2"]

    async def test_default_response(self):
        """测试没有预设响应时使用默认值"""
        from chainkit.providers.fake import FakeLLM

        result = await FakeLLM().generate("hi")
        assert result.text == "fake response"

    async def test_usage(self, fake_llm):
        """测试 token 使用量估算"""
        result = await fake_llm.generate("abcdefgh")
        assert result.token_usage is not None
        assert result.token_usage.prompt_tokens == 2


@pytest.mark.asyncio
class TestFakeChatModel:
    """测试 FakeChatModel"""

    async def test_records_messages(self, fake_chat_model):
        """测试记录收到的消息"""
        messages = [ChatMessage.human("hello")]
        result = await fake_chat_model.generate(messages)
        assert result.text == "fake chat answer"
        assert fake_chat_model.messages == [messages]

    async def test_stream(self, fake_chat_model):
        """测试流式输出"""
        chunks = [chunk async for chunk in fake_chat_model.astream([ChatMessage.human("hello")])]
        assert "".join(chunk.text for chunk in chunks) == "fake chat answer"
        assert chunks[-1].finish_reason == "stop"
