"""
TransformChain

用普通函数（同步或异步）变换输入，不调用模型
"""

import inspect
from typing import Any
from collections.abc import Callable, Sequence

from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.values import ChainValues


class TransformChain(Chain):
    """用函数实现的 chain

    Example:
        >>> chain = TransformChain(["text"], ["upper"], lambda v: {"upper": v["text"].upper()})
    """

    def __init__(
        self,
        input_variables: Sequence[str],
        output_variables: Sequence[str],
        transform: Callable[[ChainValues], Any],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        """
        Args:
            input_variables: 输入 key
            output_variables: 输出 key
            transform: 变换函数，接收 ChainValues，返回包含全部输出 key 的字典（可以是协程函数）
        """
        super().__init__(callbacks=callbacks, verbose=verbose)
        self.input_variables = list(input_variables)
        self.output_variables = list(output_variables)
        self.transform = transform

    @property
    def input_keys(self) -> list[str]:
        return list(self.input_variables)

    @property
    def output_keys(self) -> list[str]:
        return list(self.output_variables)

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        result = self.transform(inputs)
        if inspect.isawaitable(result):
            result = await result
        return dict(result)


__all__ = [
    "TransformChain",
]
