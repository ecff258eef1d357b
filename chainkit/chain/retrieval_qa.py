"""
检索问答 chain
"""

from abc import ABC, abstractmethod
from typing import Any
from collections.abc import Sequence

from loguru import logger

from chainkit.base import LanguageModel
from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.combine_documents import BaseCombineDocumentsChain, StuffDocumentsChain
from chainkit.chain.llm import LLMChain
from chainkit.chain.memory import BaseMemory
from chainkit.chain.prompt import PromptTemplate
from chainkit.chain.values import ChainValues
from chainkit.types import Document

QA_PROMPT = PromptTemplate(
    """Use the following pieces of context to answer the question at the end. If you don't know the answer, just say that you don't know, don't try to make up an answer.

{{context}}

Question: {{question}}
Helpful Answer:""",
)


class Retriever(ABC):
    """文档检索接口"""

    @abstractmethod
    async def aget_relevant_documents(self, query: str) -> list[Document]:
        """根据查询返回相关文档（按相关度排序）"""


class RetrievalQAChain(Chain):
    """先检索文档，再基于文档回答问题

    Example:
        >>> chain = RetrievalQAChain.from_llm(llm, retriever)
        >>> answer = await chain.arun("Why don't scientists trust atoms?")
    """

    def __init__(
        self,
        retriever: Retriever,
        combine_documents_chain: BaseCombineDocumentsChain,
        input_key: str = "query",
        output_key: str = "result",
        return_source_documents: bool = False,
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        """
        Args:
            retriever: 检索器
            combine_documents_chain: 基于检索结果回答问题的文档合并 chain，需要接收 question 变量
            input_key: 问题的输入 key
            output_key: 答案的输出 key
            return_source_documents: 是否在输出中附带检索到的文档（key 为 source_documents）
        """
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        self.retriever = retriever
        self.combine_documents_chain = combine_documents_chain
        self.input_key = input_key
        self.output_key = output_key
        self.return_source_documents = return_source_documents

    @classmethod
    def from_llm(
        cls,
        llm: LanguageModel,
        retriever: Retriever,
        prompt: PromptTemplate = QA_PROMPT,
        **kwargs: Any,
    ) -> "RetrievalQAChain":
        """用 stuff 方式组装检索问答 chain"""
        verbose = kwargs.get("verbose", False)
        combine_chain = StuffDocumentsChain(LLMChain(llm, prompt, verbose=verbose), verbose=verbose)
        return cls(retriever, combine_chain, **kwargs)

    @property
    def input_keys(self) -> list[str]:
        return [self.input_key]

    @property
    def output_keys(self) -> list[str]:
        if self.return_source_documents:
            return [self.output_key, "source_documents"]
        return [self.output_key]

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        question = inputs.get_string(self.input_key)
        docs = await self.retriever.aget_relevant_documents(question)
        logger.debug(f"RetrievalQAChain retrieved {len(docs)} documents")

        combine_inputs = {
            self.combine_documents_chain.input_key: docs,
            "question": question,
        }
        combined = await self.combine_documents_chain.ainvoke(combine_inputs, callbacks=run_manager.handlers)

        outputs: dict[str, Any] = {self.output_key: combined[self.combine_documents_chain.output_key]}
        if self.return_source_documents:
            outputs["source_documents"] = docs
        return outputs


__all__ = [
    "QA_PROMPT",
    "Retriever",
    "RetrievalQAChain",
]
