"""
文档合并 chain 测试
"""

import pytest

from chainkit.chain.combine_documents import (
    MapReduceDocumentsChain,
    RefineDocumentsChain,
    StuffDocumentsChain,
    format_document,
)
from chainkit.chain.exceptions import InputValuesWrongTypeError, InvalidInputValuesError
from chainkit.chain.llm import LLMChain
from chainkit.chain.prompt import PromptTemplate
from chainkit.providers.fake import FakeLLM
from chainkit.types import Document


class TestFormatDocument:
    """测试文档渲染"""

    def test_metadata_variables(self):
        doc = Document(page_content="content", metadata={"source": "wiki"})
        assert format_document(doc) == "content"
        assert format_document(doc, PromptTemplate("[{{source}}] {{page_content}}")) == "[wiki] content"


@pytest.mark.asyncio
class TestStuffDocumentsChain:
    """测试 Stuff 方式"""

    async def test_stuff(self, sample_documents):
        """测试文档拼接后调用一次模型"""
        llm = FakeLLM(responses=["summary"])
        chain = StuffDocumentsChain(LLMChain(llm, PromptTemplate("Docs:\n{{context}}\nQ: {{question}}")))
        assert chain.input_keys == ["input_documents", "question"]

        outputs = await chain.ainvoke({"input_documents": sample_documents, "question": "funny?"})
        assert outputs == {"text": "summary"}
        assert llm.call_count == 1
        assert llm.prompts[0] == (
            "Docs:\n"
            + sample_documents[0].page_content
            + "\n\n"
            + sample_documents[1].page_content
            + "\nQ: funny?"
        )
        print("✓ Stuff 测试通过")

    async def test_empty_documents(self):
        """测试空文档列表"""
        llm = FakeLLM(responses=["nothing"])
        chain = StuffDocumentsChain(LLMChain(llm, PromptTemplate("[{{context}}]")))
        assert await chain.arun(input_documents=[]) == "nothing"
        assert llm.prompts == ["[]"]

    async def test_wrong_type(self):
        chain = StuffDocumentsChain(LLMChain(FakeLLM(), PromptTemplate("{{context}}")))
        with pytest.raises(InputValuesWrongTypeError):
            await chain.ainvoke({"input_documents": ["not a document"]})


@pytest.mark.asyncio
class TestRefineDocumentsChain:
    """测试 Refine 方式"""

    def _make_chain(self, llm):
        return RefineDocumentsChain(
            LLMChain(llm, PromptTemplate("Initial: {{context}}")),
            LLMChain(llm, PromptTemplate("Refine {{existing_answer}} with {{context}}")),
        )

    async def test_refine_in_order(self, sample_documents):
        """测试第一个文档生成初始答案，之后逐个修正"""
        llm = FakeLLM(responses=["answer-1", "answer-2"])
        chain = self._make_chain(llm)

        assert await chain.arun(input_documents=sample_documents) == "answer-2"
        assert llm.prompts[0] == f"Initial: {sample_documents[0].page_content}"
        assert llm.prompts[1] == f"Refine answer-1 with {sample_documents[1].page_content}"

    async def test_empty_documents(self):
        """测试空文档列表报错"""
        llm = FakeLLM()
        with pytest.raises(InvalidInputValuesError):
            await self._make_chain(llm).ainvoke({"input_documents": []})
        assert llm.call_count == 0

    async def test_resume_from_existing_answer(self, sample_documents):
        """测试从已有答案继续修正"""
        llm = FakeLLM(responses=["r1", "r2"])
        chain = self._make_chain(llm)

        outputs = await chain.ainvoke({"input_documents": sample_documents, "existing_answer": "partial"})
        assert outputs["text"] == "r2"
        assert llm.prompts[0].startswith("Refine partial with")
        assert llm.call_count == 2

    async def test_refine_three_documents_folds_in_order(self):
        """测试三个文档的修正结果与逐步手动折叠一致"""
        docs = [Document(page_content=f"doc-{index}") for index in range(1, 4)]
        llm = FakeLLM(responses=["a1", "a2", "a3"])
        chain = self._make_chain(llm)

        assert await chain.arun(input_documents=docs) == "a3"
        assert llm.prompts == [
            "Initial: doc-1",
            "Refine a1 with doc-2",
            "Refine a2 with doc-3",
        ]
        print("✓ Refine 三文档折叠测试通过")

    async def test_refine_prompt_keys_checked_before_model_call(self, sample_documents):
        """测试 refine 提示词需要的变量在调用模型前校验"""
        llm = FakeLLM()
        chain = RefineDocumentsChain(
            LLMChain(llm, PromptTemplate("Initial: {{context}}")),
            LLMChain(llm, PromptTemplate("Q: {{question}} Refine {{existing_answer}} with {{context}}")),
        )
        assert chain.input_keys == ["input_documents", "question"]

        with pytest.raises(InvalidInputValuesError) as exc_info:
            await chain.ainvoke({"input_documents": sample_documents})
        assert exc_info.value.key == "question"
        assert llm.call_count == 0


@pytest.mark.asyncio
class TestMapReduceDocumentsChain:
    """测试 MapReduce 方式"""

    async def test_map_then_reduce(self, sample_documents):
        """测试逐个 map 后合并"""
        llm = FakeLLM(responses=["m1", "m2", "final"])
        chain = MapReduceDocumentsChain(
            LLMChain(llm, PromptTemplate("Map: {{context}}")),
            StuffDocumentsChain(LLMChain(llm, PromptTemplate("Reduce: {{context}}"))),
            return_intermediate_steps=True,
        )

        outputs = await chain.ainvoke({"input_documents": sample_documents})
        assert outputs == {"text": "final", "intermediate_steps": ["m1", "m2"]}
        assert llm.prompts[2] == "Reduce: m1\n\nm2"
        print("✓ MapReduce 测试通过")

    async def test_empty_documents(self):
        llm = FakeLLM(responses=["empty"])
        chain = MapReduceDocumentsChain(
            LLMChain(llm, PromptTemplate("Map: {{context}}")),
            StuffDocumentsChain(LLMChain(llm, PromptTemplate("Reduce: {{context}}"))),
        )
        assert await chain.arun(input_documents=[]) == "empty"
        assert llm.prompts == ["Reduce: "]

    async def test_combine_prompt_keys_checked_before_model_call(self, sample_documents):
        """测试合并提示词需要的变量在 map 之前校验"""
        llm = FakeLLM()
        chain = MapReduceDocumentsChain(
            LLMChain(llm, PromptTemplate("Map: {{context}}")),
            StuffDocumentsChain(LLMChain(llm, PromptTemplate("Reduce for {{audience}}: {{context}}"))),
        )
        assert chain.input_keys == ["input_documents", "audience"]

        with pytest.raises(InvalidInputValuesError) as exc_info:
            await chain.ainvoke({"input_documents": sample_documents})
        assert exc_info.value.key == "audience"
        assert llm.call_count == 0
