"""
LLMChain 和 Chain 调用协议测试
"""

import asyncio

import pytest

from chainkit.callbacks import BaseCallbackHandler
from chainkit.chain.exceptions import ChainError, InvalidInputValuesError
from chainkit.chain.llm import LLMChain
from chainkit.chain.memory import ConversationBufferMemory, SimpleMemory
from chainkit.chain.output_parser import JsonOutputParser
from chainkit.chain.prompt import ChatPromptTemplate, MessagesPlaceholder, PromptTemplate
from chainkit.providers.fake import FakeChatModel, FakeLLM
from chainkit.types import ChatMessage, GenerateOptions


class ChainRecorder(BaseCallbackHandler):
    """记录 chain 和 llm 回调顺序"""

    def __init__(self):
        self.events: list[str] = []

    async def on_chain_start(self, chain_name, inputs):
        self.events.append(f"chain_start:{chain_name}")

    async def on_chain_end(self, chain_name, outputs):
        self.events.append(f"chain_end:{chain_name}")

    async def on_chain_error(self, chain_name, error):
        self.events.append(f"chain_error:{chain_name}")

    async def on_llm_start(self, model_name, prompts):
        self.events.append("llm_start")

    async def on_llm_end(self, result):
        self.events.append("llm_end")


class SlowLLM(FakeLLM):
    async def _generate(self, prompt, options, run_manager):
        await asyncio.sleep(10)
        return await super()._generate(prompt, options, run_manager)


@pytest.mark.asyncio
class TestLLMChain:
    """测试 LLMChain"""

    async def test_basic_call(self, fake_llm):
        """测试格式化提示词并调用模型"""
        chain = LLMChain(fake_llm, PromptTemplate("Tell me a joke about {{topic}}"))
        assert chain.input_keys == ["topic"]
        assert chain.output_keys == ["text"]

        outputs = await chain.ainvoke({"topic": "cats"})
        assert outputs == {"text": "fake answer"}
        assert fake_llm.prompts == ["Tell me a joke about cats"]
        print("✓ LLMChain 基础调用测试通过")

    async def test_output_is_stripped(self):
        chain = LLMChain.from_string(FakeLLM(responses=["  padded \n"]), "{{q}}")
        assert await chain.arun("x") == "padded"

    async def test_missing_input_never_calls_model(self, fake_llm):
        """测试缺少输入时不调用模型"""
        chain = LLMChain(fake_llm, PromptTemplate("{{a}} {{b}}"))
        with pytest.raises(InvalidInputValuesError) as exc_info:
            await chain.ainvoke({"a": "1"})
        assert exc_info.value.key == "b"
        assert fake_llm.call_count == 0

    async def test_generate_options_passed(self, fake_llm):
        """测试 generate_options 传给模型"""
        chain = LLMChain(fake_llm, PromptTemplate("{{q}}"), generate_options=GenerateOptions(stop=["\nObservation:"]))
        await chain.apredict(q="x")
        assert fake_llm.options[0].stop == ["\nObservation:"]

    async def test_output_parser(self):
        """测试输出解析器"""
        llm = FakeLLM(responses=['{"name": "Bob"}'])
        chain = LLMChain(llm, PromptTemplate("{{q}}"), output_parser=JsonOutputParser())
        assert await chain.apredict(q="who?") == {"name": "Bob"}

    async def test_predict_and_parse(self):
        llm = FakeLLM(responses=['[1, 2]'])
        chain = LLMChain(llm, PromptTemplate("{{q}}"))
        assert await chain.apredict_and_parse(JsonOutputParser(), q="numbers") == [1, 2]
        assert await chain.aapply_and_parse([{"q": "a"}, {"q": "b"}], JsonOutputParser()) == [[1, 2], [1, 2]]

    async def test_chat_model_with_chat_prompt(self, fake_chat_model):
        """测试聊天模型使用消息视图"""
        prompt = ChatPromptTemplate.from_messages(("system", "Be nice."), ("human", "{{question}}"))
        chain = LLMChain(fake_chat_model, prompt)
        assert await chain.arun(question="Hi?") == "fake chat answer"
        assert fake_chat_model.messages[0] == [ChatMessage.system("Be nice."), ChatMessage.human("Hi?")]

    async def test_callback_order(self, fake_llm):
        """测试 chain 和 llm 回调顺序"""
        recorder = ChainRecorder()
        chain = LLMChain(fake_llm, PromptTemplate("{{q}}"))
        await chain.ainvoke({"q": "x"}, callbacks=[recorder])
        assert recorder.events == ["chain_start:LLMChain", "llm_start", "llm_end", "chain_end:LLMChain"]

    async def test_error_callback(self):
        """测试执行失败触发 on_chain_error 并原样抛出"""
        recorder = ChainRecorder()
        chain = LLMChain(FakeLLM(responses=["not json"]), PromptTemplate("{{q}}"), output_parser=JsonOutputParser())
        with pytest.raises(ChainError):
            await chain.ainvoke({"q": "x"}, callbacks=[recorder])
        assert recorder.events[-1] == "chain_error:LLMChain"

    async def test_cancellation_is_not_wrapped(self):
        """测试取消不会被包装成其他异常"""
        recorder = ChainRecorder()
        chain = LLMChain(SlowLLM(), PromptTemplate("{{q}}"), callbacks=[recorder])
        task = asyncio.create_task(chain.ainvoke({"q": "x"}))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert "chain_error:LLMChain" not in recorder.events

    async def test_arun_requires_single_output(self, fake_llm):
        chain = LLMChain(fake_llm, PromptTemplate("{{a}} {{b}}"))
        with pytest.raises(ChainError):
            await chain.arun("only one")

    async def test_aapply(self, fake_llm):
        fake_llm.responses = ["one", "two"]
        chain = LLMChain(fake_llm, PromptTemplate("{{q}}"))
        results = await chain.aapply([{"q": "a"}, {"q": "b"}])
        assert [r["text"] for r in results] == ["one", "two"]


@pytest.mark.asyncio
class TestChainMemory:
    """测试挂载 memory 的调用协议"""

    async def test_memory_keys_skip_validation_and_override(self, fake_llm):
        """测试 memory 提供的 key 不需要传入，且覆盖同名输入"""
        chain = LLMChain(
            fake_llm,
            PromptTemplate("{{persona}}: {{q}}"),
            memory=SimpleMemory({"persona": "stored"}),
        )
        await chain.ainvoke({"q": "hi"})
        await chain.ainvoke({"q": "hi", "persona": "passed"})
        assert fake_llm.prompts == ["stored: hi", "stored: hi"]

    async def test_conversation_memory(self):
        """测试多轮对话记忆"""
        llm = FakeLLM(responses=["Hello Bob!", "Your name is Bob."])
        memory = ConversationBufferMemory()
        chain = LLMChain(llm, PromptTemplate("{{history}}\nHuman: {{input}}\nAI:"), memory=memory)

        await chain.arun("My name is Bob")
        await chain.arun("What is my name?")

        assert llm.prompts[1].startswith("Human: My name is Bob\nAI: Hello Bob!")
        assert len(memory.messages) == 4
        print("✓ 多轮对话测试通过")

    async def test_chat_memory_with_placeholder(self, fake_chat_model):
        """测试消息形式的记忆配合 MessagesPlaceholder"""
        memory = ConversationBufferMemory(return_messages=True)
        prompt = ChatPromptTemplate.from_messages(MessagesPlaceholder("history"), ("human", "{{input}}"))
        chain = LLMChain(fake_chat_model, prompt, memory=memory)

        await chain.arun("first")
        await chain.arun("second")

        assert [m.content for m in fake_chat_model.messages[1]] == ["first", "fake chat answer", "second"]

    async def test_memory_not_saved_on_error(self):
        """测试失败时不保存上下文"""
        memory = ConversationBufferMemory()
        chain = LLMChain(
            FakeLLM(responses=["oops"]),
            PromptTemplate("{{history}}{{input}}"),
            output_parser=JsonOutputParser(),
            memory=memory,
        )
        with pytest.raises(ChainError):
            await chain.arun("x")
        assert memory.messages == []
