"""
问答评估

用模型给问答结果打分，输出 CORRECT 或 INCORRECT
"""

from typing import Any
from collections.abc import Mapping, Sequence

from loguru import logger

from chainkit.base import LanguageModel
from chainkit.callbacks import BaseCallbackHandler
from chainkit.chain.exceptions import InvalidInputValuesError
from chainkit.chain.llm import LLMChain
from chainkit.chain.prompt import PromptTemplate
from chainkit.chain.values import ChainValues

QA_EVAL_PROMPT = PromptTemplate(
    """You are a teacher grading a quiz.
You are given a question, the student's answer, and the true answer, and are asked to score the student answer as either CORRECT or INCORRECT.

Example Format:
QUESTION: question here
STUDENT ANSWER: student's answer here
TRUE ANSWER: true answer here
GRADE: CORRECT or INCORRECT here

Grade the student answers based ONLY on their factual accuracy. Ignore differences in punctuation and phrasing between the student answer and true answer. It is OK if the student answer contains more information than the true answer, as long as it does not contain any conflicting statements. Begin!

QUESTION: {{query}}
STUDENT ANSWER: {{result}}
TRUE ANSWER: {{answer}}
GRADE:""",
)

CONTEXT_QA_EVAL_PROMPT = PromptTemplate(
    """You are a teacher grading a quiz.
You are given a question, the context the question is about, and the student's answer.
You are asked to score the student's answer as either CORRECT or INCORRECT, based on the context.

Example Format:
QUESTION: question here
CONTEXT: context the question is about here
STUDENT ANSWER: student's answer here
GRADE: CORRECT or INCORRECT here

Grade the student answers based ONLY on their factual accuracy.
Ignore differences in punctuation and phrasing between the student answer and true answer.
It is OK if the student answer contains more information than the true answer, as long as
it does not contain any conflicting statements. Begin!

QUESTION: {{query}}
CONTEXT: {{context}}
STUDENT ANSWER: {{result}}
GRADE:""",
)


def _pick(values: Mapping[str, Any], key: str, index: int) -> Any:
    if key not in values:
        raise InvalidInputValuesError(key, f"Missing key '{key}' in item {index}")
    return values[key]


def _check_lengths(examples: Sequence[Mapping[str, Any]], predictions: Sequence[Mapping[str, Any]]) -> None:
    if len(examples) != len(predictions):
        raise InvalidInputValuesError(
            "predictions",
            f"Got {len(examples)} examples but {len(predictions)} predictions",
        )


class QAEvalChain(LLMChain):
    """对照标准答案评估问答结果"""

    @classmethod
    def from_llm(cls, llm: LanguageModel, prompt: PromptTemplate = QA_EVAL_PROMPT, **kwargs: Any) -> "QAEvalChain":
        """
        Args:
            llm: 评估使用的模型
            prompt: 评估提示词，需要 query、answer、result 三个变量
        """
        return cls(llm, prompt, **kwargs)

    async def aevaluate(
        self,
        examples: Sequence[Mapping[str, Any]],
        predictions: Sequence[Mapping[str, Any]],
        question_key: str = "query",
        answer_key: str = "answer",
        prediction_key: str = "result",
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> list[ChainValues]:
        """逐条评估

        Args:
            examples: 样例，包含问题和标准答案
            predictions: 预测结果，与 examples 一一对应
            question_key: 样例中问题的 key
            answer_key: 样例中标准答案的 key
            prediction_key: 预测结果中答案的 key

        Returns:
            每条样例的评估输出（key 为 output_key）

        Raises:
            InvalidInputValuesError: examples 和 predictions 数量不一致，或缺少 key
        """
        _check_lengths(examples, predictions)
        inputs = [
            {
                "query": _pick(example, question_key, index),
                "answer": _pick(example, answer_key, index),
                "result": _pick(prediction, prediction_key, index),
            }
            for index, (example, prediction) in enumerate(zip(examples, predictions))
        ]
        logger.debug(f"QAEvalChain evaluating {len(inputs)} examples")
        return await self.aapply(inputs, callbacks=callbacks)


class ContextQAEvalChain(LLMChain):
    """没有标准答案时，根据上下文评估问答结果"""

    @classmethod
    def from_llm(
        cls,
        llm: LanguageModel,
        prompt: PromptTemplate = CONTEXT_QA_EVAL_PROMPT,
        **kwargs: Any,
    ) -> "ContextQAEvalChain":
        return cls(llm, prompt, **kwargs)

    async def aevaluate(
        self,
        examples: Sequence[Mapping[str, Any]],
        predictions: Sequence[Mapping[str, Any]],
        question_key: str = "query",
        context_key: str = "context",
        prediction_key: str = "result",
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> list[ChainValues]:
        _check_lengths(examples, predictions)
        inputs = [
            {
                "query": _pick(example, question_key, index),
                "context": _pick(example, context_key, index),
                "result": _pick(prediction, prediction_key, index),
            }
            for index, (example, prediction) in enumerate(zip(examples, predictions))
        ]
        logger.debug(f"ContextQAEvalChain evaluating {len(inputs)} examples")
        return await self.aapply(inputs, callbacks=callbacks)


__all__ = [
    "QA_EVAL_PROMPT",
    "CONTEXT_QA_EVAL_PROMPT",
    "QAEvalChain",
    "ContextQAEvalChain",
]
