"""
Chain 模块基础抽象

定义统一的 Runnable 接口和 Chain 调用协议
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar
from collections.abc import AsyncIterator, Mapping, Sequence

from loguru import logger

from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.exceptions import ChainError, InvalidInputValuesError
from chainkit.chain.values import ChainValues

if TYPE_CHECKING:
    from chainkit.chain.memory import BaseMemory
    from chainkit.chain.sequential import SequentialChain

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class Runnable(Generic[InputT, OutputT], ABC):
    """统一的可运行接口

    所有 Chain 组件都需要实现此接口，提供统一的调用方式
    """

    @abstractmethod
    async def ainvoke(self, input: InputT) -> OutputT:
        """异步调用

        Args:
            input: 输入数据

        Returns:
            输出数据
        """

    async def abatch(self, inputs: Sequence[InputT]) -> list[OutputT]:
        """批量调用

        按顺序逐个执行，第一个失败的调用会中止整个批次

        Args:
            inputs: 输入数据列表

        Returns:
            输出数据列表
        """
        return [await self.ainvoke(inp) for inp in inputs]

    async def astream(self, input: InputT) -> AsyncIterator[OutputT]:
        """流式输出

        默认实现是一次性调用，子类可以覆盖以提供真正的流式输出
        """
        result = await self.ainvoke(input)
        yield result


class Chain(Runnable[Mapping[str, Any], ChainValues]):
    """Chain 基类

    调用协议：
        1. 校验 input_keys 中除 memory 提供的 key 以外都已传入
        2. 如果挂载了 memory，加载记忆变量并覆盖到输入上（记忆优先）
        3. 执行 `_call`，输出必须包含 output_keys 中的所有 key
        4. 如果挂载了 memory，保存本次上下文
        5. 返回输出

    1 到 3 中的任何错误都会原样抛出，不返回部分结果，也不在这一层重试
    """

    def __init__(
        self,
        memory: "BaseMemory | None" = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        self.memory = memory
        self.callbacks: list[BaseCallbackHandler] = list(callbacks or [])
        self.verbose = verbose

    @property
    @abstractmethod
    def input_keys(self) -> list[str]:
        """chain 需要的输入 key"""

    @property
    @abstractmethod
    def output_keys(self) -> list[str]:
        """chain 产生的输出 key"""

    @property
    def chain_type(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        """chain 的具体转换逻辑，由子类实现"""

    def _validate_inputs(self, inputs: Mapping[str, Any]) -> None:
        memory_keys = set(self.memory.memory_variables) if self.memory is not None else set()
        for key in self.input_keys:
            if key in memory_keys:
                continue
            if key not in inputs:
                logger.error(f"{self.chain_type} missing input key: {key}")
                raise InvalidInputValuesError(key)

    def _validate_outputs(self, outputs: Mapping[str, Any]) -> None:
        missing = [key for key in self.output_keys if key not in outputs]
        if missing:
            raise ChainError(f"{self.chain_type} did not produce output keys: {', '.join(missing)}")

    def _select_outputs(self, outputs: Mapping[str, Any]) -> dict[str, Any]:
        """校验输出并只保留 output_keys 中声明的 key"""
        self._validate_outputs(outputs)
        return {key: outputs[key] for key in self.output_keys}

    async def _prepare_inputs(self, inputs: ChainValues) -> ChainValues:
        values = inputs.clone()
        if self.memory is not None:
            values.update(await self.memory.load_memory_variables(inputs))
        return values

    async def _start_run(
        self,
        input: Mapping[str, Any],
        callbacks: Sequence[BaseCallbackHandler] | None,
    ) -> tuple[CallbackManager, ChainValues, ChainValues]:
        """校验输入、加载记忆并触发 on_chain_start

        Returns:
            (回调管理器, 原始输入, 合并记忆后的输入)
        """
        run_manager = CallbackManager.configure(self.callbacks, callbacks, verbose=self.verbose)
        inputs = ChainValues(input)

        self._validate_inputs(inputs)
        values = await self._prepare_inputs(inputs)

        logger.debug(f"{self.chain_type} start - inputs: {list(values.keys())}")
        await run_manager.on_chain_start(self.chain_type, values)
        return run_manager, inputs, values

    async def _end_run(
        self,
        run_manager: CallbackManager,
        inputs: ChainValues,
        outputs: dict[str, Any],
    ) -> ChainValues:
        """触发 on_chain_end 并保存记忆"""
        await run_manager.on_chain_end(self.chain_type, outputs)

        if self.memory is not None:
            await self.memory.save_context(inputs, outputs)

        logger.debug(f"{self.chain_type} completed - outputs: {list(outputs.keys())}")
        return ChainValues(outputs)

    async def ainvoke(
        self,
        input: Mapping[str, Any],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> ChainValues:
        """执行 chain

        Args:
            input: 输入值
            callbacks: 本次调用附加的回调

        Returns:
            输出值（只包含 output_keys 中的 key）

        Raises:
            InvalidInputValuesError: 缺少必需的输入
            ChainError: chain 执行失败
        """
        run_manager, inputs, values = await self._start_run(input, callbacks)
        try:
            outputs = self._select_outputs(await self._call(values, run_manager))
        except Exception as e:
            await run_manager.on_chain_error(self.chain_type, e)
            raise
        return await self._end_run(run_manager, inputs, outputs)

    async def arun(
        self,
        *args: Any,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        **kwargs: Any,
    ) -> Any:
        """执行只有一个输出 key 的 chain，直接返回该输出

        只有一个非 memory 输入 key 时可以用位置参数传入

        Example:
            >>> answer = await chain.arun("What is 2 + 2?")
            >>> answer = await chain.arun(question="What is 2 + 2?")
        """
        if len(self.output_keys) != 1:
            raise ChainError(f"arun requires exactly one output key, {self.chain_type} has {self.output_keys}")

        if args:
            if kwargs or len(args) != 1:
                raise ChainError("arun accepts either a single positional argument or keyword arguments")
            memory_keys = set(self.memory.memory_variables) if self.memory is not None else set()
            input_keys = [key for key in self.input_keys if key not in memory_keys]
            if len(input_keys) != 1:
                raise ChainError(f"arun with a positional argument requires exactly one input key, got {input_keys}")
            kwargs = {input_keys[0]: args[0]}

        outputs = await self.ainvoke(kwargs, callbacks=callbacks)
        return outputs[self.output_keys[0]]

    async def aapply(
        self,
        inputs: Sequence[Mapping[str, Any]],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> list[ChainValues]:
        """对输入列表逐个执行 chain"""
        return [await self.ainvoke(inp, callbacks=callbacks) for inp in inputs]

    def __or__(self, other: "Chain") -> "SequentialChain":
        """pipe 操作符支持

        前一个 chain 的输出作为后一个 chain 的输入：

            chain = summarize_chain | translate_chain
        """
        from chainkit.chain.sequential import SequentialChain

        return SequentialChain([self, other])

    def __repr__(self) -> str:
        return f"{self.chain_type}(input_keys={self.input_keys}, output_keys={self.output_keys})"


__all__ = [
    "Runnable",
    "Chain",
]
