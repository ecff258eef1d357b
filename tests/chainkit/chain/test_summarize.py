"""
摘要 chain 测试
"""

import pytest

from chainkit.chain.combine_documents import MapReduceDocumentsChain, RefineDocumentsChain, StuffDocumentsChain
from chainkit.chain.exceptions import ChainConfigError
from chainkit.chain.summarize import load_summarize_chain
from chainkit.providers.fake import FakeLLM


@pytest.mark.asyncio
class TestLoadSummarizeChain:
    """测试摘要 chain 工厂"""

    async def test_stuff(self, sample_documents):
        llm = FakeLLM(responses=["Two jokes."])
        chain = load_summarize_chain(llm)
        assert isinstance(chain, StuffDocumentsChain)

        assert await chain.arun(input_documents=sample_documents) == "Two jokes."
        assert "CONCISE SUMMARY:" in llm.prompts[0]
        print("✓ Stuff 摘要测试通过")

    async def test_refine(self, sample_documents):
        llm = FakeLLM(responses=["first summary", "refined summary"])
        chain = load_summarize_chain(llm, chain_type="refine")
        assert isinstance(chain, RefineDocumentsChain)

        assert await chain.arun(input_documents=sample_documents) == "refined summary"
        assert "existing summary up to a certain point: first summary" in llm.prompts[1]

    async def test_map_reduce(self, sample_documents):
        llm = FakeLLM(responses=["s1", "s2", "combined"])
        chain = load_summarize_chain(llm, chain_type="map_reduce", return_intermediate_steps=True)
        assert isinstance(chain, MapReduceDocumentsChain)

        outputs = await chain.ainvoke({"input_documents": sample_documents})
        assert outputs["text"] == "combined"
        assert outputs["intermediate_steps"] == ["s1", "s2"]

    async def test_unknown_type(self):
        with pytest.raises(ChainConfigError):
            load_summarize_chain(FakeLLM(), chain_type="unknown")  # type: ignore[arg-type]
