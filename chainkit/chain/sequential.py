"""
顺序组合 chain

前一个 chain 的输出作为后续 chain 的输入，任意一步失败立即中止
"""

from typing import Any
from collections.abc import Sequence

from loguru import logger

from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.exceptions import ChainConfigError
from chainkit.chain.memory import BaseMemory
from chainkit.chain.values import ChainValues


class SequentialChain(Chain):
    """按顺序执行多个 chain，key 的串联关系在构造时校验

    Example:
        >>> chain = SequentialChain(
        ...     [synopsis_chain, review_chain],
        ...     input_variables=["title"],
        ...     output_variables=["review"],
        ... )
    """

    def __init__(
        self,
        chains: Sequence[Chain],
        input_variables: Sequence[str] | None = None,
        output_variables: Sequence[str] | None = None,
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        """初始化 SequentialChain

        Args:
            chains: 按执行顺序排列的 chain
            input_variables: 整体输入 key，为空时根据各 chain 的输入自动推断
            output_variables: 整体输出 key，为空时使用最后一个 chain 的输出
            memory: 记忆
            callbacks: 回调
            verbose: 是否挂载日志回调

        Raises:
            ChainConfigError: chain 为空，或 key 无法串联
        """
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        if not chains:
            raise ChainConfigError("SequentialChain requires at least one chain")

        self.chains = list(chains)
        memory_keys = list(memory.memory_variables) if memory is not None else []

        self.explicit_input_variables = input_variables is not None
        if input_variables is None:
            input_variables = self._infer_input_variables(memory_keys)
        self.input_variables = list(input_variables)

        if output_variables is None:
            output_variables = self.chains[-1].output_keys
        self.output_variables = list(output_variables)

        self._validate_chains(memory_keys)

    def _infer_input_variables(self, memory_keys: list[str]) -> list[str]:
        produced = set(memory_keys)
        required: list[str] = []
        for chain in self.chains:
            for key in chain.input_keys:
                if key not in produced and key not in required:
                    required.append(key)
            produced.update(chain.output_keys)
        return required

    def _validate_chains(self, memory_keys: list[str]) -> None:
        overlapping = set(memory_keys) & set(self.input_variables)
        if overlapping:
            raise ChainConfigError(f"Input variables {sorted(overlapping)} are also provided by memory")

        known = set(self.input_variables) | set(memory_keys)
        for index, chain in enumerate(self.chains):
            missing = [key for key in chain.input_keys if key not in known]
            if missing:
                raise ChainConfigError(
                    f"Chain {index} ({chain.chain_type}) is missing input keys {missing}, only {sorted(known)} available",
                )
            duplicated = [key for key in chain.output_keys if key in known]
            if duplicated:
                raise ChainConfigError(
                    f"Chain {index} ({chain.chain_type}) returns keys {duplicated} that already exist",
                )
            known.update(chain.output_keys)

        missing_outputs = [key for key in self.output_variables if key not in known]
        if missing_outputs:
            raise ChainConfigError(f"Output variables {missing_outputs} are not produced by any chain")

    @property
    def input_keys(self) -> list[str]:
        return list(self.input_variables)

    @property
    def output_keys(self) -> list[str]:
        return list(self.output_variables)

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        known = inputs.clone()
        for index, chain in enumerate(self.chains):
            logger.debug(f"SequentialChain step {index + 1}/{len(self.chains)}: {chain.chain_type}")
            outputs = await chain.ainvoke(known, callbacks=run_manager.handlers)
            known.update(outputs)
        return {key: known[key] for key in self.output_variables}

    def __or__(self, other: Chain) -> "SequentialChain":
        """追加一个 chain，保留显式声明的输入、memory 和回调配置

        输出 key 重新取新的最后一个 chain 的输出
        """
        return SequentialChain(
            [*self.chains, other],
            input_variables=self.input_variables if self.explicit_input_variables else None,
            memory=self.memory,
            callbacks=self.callbacks,
            verbose=self.verbose,
        )


class SimpleSequentialChain(Chain):
    """每个 chain 只有一个输入和一个输出，上一步的输出直接作为下一步的输入"""

    def __init__(
        self,
        chains: Sequence[Chain],
        strip_outputs: bool = False,
        input_key: str = "input",
        output_key: str = "output",
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        if not chains:
            raise ChainConfigError("SimpleSequentialChain requires at least one chain")
        for index, chain in enumerate(chains):
            if len(chain.input_keys) != 1 or len(chain.output_keys) != 1:
                raise ChainConfigError(
                    f"Chain {index} ({chain.chain_type}) must have exactly one input and one output key, "
                    f"got {chain.input_keys} -> {chain.output_keys}",
                )
        self.chains = list(chains)
        self.strip_outputs = strip_outputs
        self.input_key = input_key
        self.output_key = output_key

    @property
    def input_keys(self) -> list[str]:
        return [self.input_key]

    @property
    def output_keys(self) -> list[str]:
        return [self.output_key]

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        value: Any = inputs[self.input_key]
        for index, chain in enumerate(self.chains):
            outputs = await chain.ainvoke({chain.input_keys[0]: value}, callbacks=run_manager.handlers)
            value = outputs[chain.output_keys[0]]
            if self.strip_outputs and isinstance(value, str):
                value = value.strip()
            logger.debug(f"SimpleSequentialChain step {index + 1}/{len(self.chains)} done")
        return {self.output_key: value}


__all__ = [
    "SequentialChain",
    "SimpleSequentialChain",
]
