"""
检索问答 chain 测试
"""

import pytest

from chainkit.chain.retrieval_qa import RetrievalQAChain, Retriever
from chainkit.providers.fake import FakeLLM
from chainkit.types import Document


class StaticRetriever(Retriever):
    """返回固定文档，并记录查询"""

    def __init__(self, documents: list[Document]):
        self.documents = documents
        self.queries: list[str] = []

    async def aget_relevant_documents(self, query: str) -> list[Document]:
        self.queries.append(query)
        return list(self.documents)


@pytest.mark.asyncio
class TestRetrievalQAChain:
    """测试检索问答"""

    async def test_answer_from_documents(self, sample_documents):
        """测试检索文档后回答"""
        llm = FakeLLM(responses=["Because they make up everything."])
        retriever = StaticRetriever(sample_documents)
        chain = RetrievalQAChain.from_llm(llm, retriever)

        answer = await chain.arun("Why don't scientists trust atoms?")

        assert answer == "Because they make up everything."
        assert retriever.queries == ["Why don't scientists trust atoms?"]
        assert sample_documents[0].page_content in llm.prompts[0]
        assert "Question: Why don't scientists trust atoms?" in llm.prompts[0]
        print("✓ 检索问答测试通过")

    async def test_return_source_documents(self, sample_documents):
        chain = RetrievalQAChain.from_llm(
            FakeLLM(responses=["ok"]),
            StaticRetriever(sample_documents),
            return_source_documents=True,
        )
        assert chain.output_keys == ["result", "source_documents"]

        outputs = await chain.ainvoke({"query": "q"})
        assert outputs["result"] == "ok"
        assert outputs["source_documents"] == sample_documents

    async def test_no_documents(self):
        """测试没有检索到文档"""
        llm = FakeLLM(responses=["I don't know"])
        chain = RetrievalQAChain.from_llm(llm, StaticRetriever([]))
        assert await chain.arun("q") == "I don't know"
