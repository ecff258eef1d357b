"""
Agent 实现

ZeroShotReactAgent 通过 ReAct 文本格式决定调用哪个工具，AgentExecutor 负责执行
“规划 -> 调用工具 -> 记录观察”的循环，支持流式输出执行过程
"""

from abc import ABC, abstractmethod
from typing import Any, Literal
from collections.abc import AsyncIterator, Mapping, Sequence

from loguru import logger

from chainkit.base import LanguageModel
from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.exceptions import AgentError, ChainConfigError, MaxIterationsError, ToolNotFoundError
from chainkit.chain.llm import LLMChain
from chainkit.chain.memory import BaseMemory
from chainkit.chain.output_parser import MRKLOutputParser
from chainkit.chain.prompt import PromptTemplate
from chainkit.chain.tool import Tool
from chainkit.chain.values import ChainValues
from chainkit.types import AgentAction, AgentFinish, AgentStep, GenerateOptions
from util.general import truncate_content

MRKL_PREFIX = """Answer the following questions as best you can. You have access to the following tools:
{{tool_descriptions}}"""

MRKL_INSTRUCTIONS = """Use the following format:

Question: the input question you must answer
Thought: you should always think about what to do
Action: the action to take, should be one of [{{tool_names}}]
Action Input: the input to the action
Observation: the result of the action
... (this Thought/Action/Action Input/Observation can repeat N times)
Thought: I now know the final answer
Final Answer: the final answer to the original input question"""

MRKL_SUFFIX = """Begin!

Question: {{input}}
Thought: {{agent_scratchpad}}"""

SCRATCHPAD_KEY = "agent_scratchpad"

AgentEventType = Literal["thought", "action", "observation", "content", "error", "max_iterations_reached"]


class AgentStream:
    """Agent 流式输出事件

    包含多种事件类型，用于流式输出 Agent 的执行过程
    """

    def __init__(
        self,
        event_type: AgentEventType,
        content: Any,
        action: AgentAction | None = None,
        step: AgentStep | None = None,
        finish: AgentFinish | None = None,
        error: Exception | None = None,
    ):
        """初始化 AgentStream

        Args:
            event_type: 事件类型
            content: 事件内容
            action: 工具调用决策（action 事件）
            step: 工具调用及观察结果（observation 事件）
            finish: 终止决策（content 事件）
            error: 异常（error 事件）
        """
        self.event_type = event_type
        self.content = content
        self.action = action
        self.step = step
        self.finish = finish
        self.error = error

    def __repr__(self) -> str:
        content = self.content[:50] if isinstance(self.content, str) else self.content
        return f"AgentStream(event_type='{self.event_type}', content={content!r})"


class BaseAgent(ABC):
    """Agent 抽象基类"""

    @property
    @abstractmethod
    def input_keys(self) -> list[str]:
        """Agent 需要的输入 key"""

    @property
    @abstractmethod
    def output_keys(self) -> list[str]:
        """AgentFinish.return_values 中的 key"""

    @abstractmethod
    async def aplan(
        self,
        intermediate_steps: Sequence[AgentStep],
        inputs: Mapping[str, Any],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> list[AgentAction] | AgentFinish:
        """根据已完成的步骤决定下一步

        Args:
            intermediate_steps: 已完成的步骤（按执行顺序）
            inputs: 用户输入

        Returns:
            要执行的工具调用列表，或终止决策
        """


def _tool_names(tools: Sequence[Tool]) -> str:
    return ", ".join(tool.name for tool in tools)


def _tool_descriptions(tools: Sequence[Tool]) -> str:
    return "\n".join(f"{tool.name}: {tool.description}" for tool in tools)


class ZeroShotReactAgent(BaseAgent):
    """零样本 ReAct Agent

    只依赖工具描述选择工具，模型输出按 MRKL 格式解析
    """

    stop_sequences = ["\nObservation:"]

    def __init__(self, llm_chain: LLMChain, tools: Sequence[Tool], output_key: str = "output"):
        self.llm_chain = llm_chain
        self.tools = list(tools)
        self.output_parser = MRKLOutputParser(output_key)
        self.output_key = output_key

    @classmethod
    def create_prompt(
        cls,
        tools: Sequence[Tool],
        prefix: str = MRKL_PREFIX,
        instructions: str = MRKL_INSTRUCTIONS,
        suffix: str = MRKL_SUFFIX,
    ) -> PromptTemplate:
        """组装 MRKL 提示词，工具名和工具描述作为 partial 变量绑定"""
        template = "\n\n".join([prefix, instructions, suffix])
        return PromptTemplate(
            template,
            partial_variables={
                "tool_names": _tool_names(tools),
                "tool_descriptions": _tool_descriptions(tools),
            },
        )

    @classmethod
    def from_llm_and_tools(
        cls,
        llm: LanguageModel,
        tools: Sequence[Tool],
        prefix: str = MRKL_PREFIX,
        instructions: str = MRKL_INSTRUCTIONS,
        suffix: str = MRKL_SUFFIX,
        output_key: str = "output",
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ) -> "ZeroShotReactAgent":
        if not tools:
            raise ChainConfigError("ZeroShotReactAgent requires at least one tool")
        llm_chain = LLMChain(
            llm,
            cls.create_prompt(tools, prefix, instructions, suffix),
            generate_options=GenerateOptions(stop=list(cls.stop_sequences)),
            callbacks=callbacks,
            verbose=verbose,
        )
        return cls(llm_chain, tools, output_key=output_key)

    @property
    def input_keys(self) -> list[str]:
        return [key for key in self.llm_chain.input_keys if key != SCRATCHPAD_KEY]

    @property
    def output_keys(self) -> list[str]:
        return [self.output_key]

    @staticmethod
    def construct_scratchpad(intermediate_steps: Sequence[AgentStep]) -> str:
        """拼接之前的推理过程，让模型在此基础上继续思考"""
        return "".join(
            f"{step.action.log}\nObservation: {step.observation}\nThought:" for step in intermediate_steps
        )

    async def aplan(
        self,
        intermediate_steps: Sequence[AgentStep],
        inputs: Mapping[str, Any],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> list[AgentAction] | AgentFinish:
        full_inputs = {**inputs, SCRATCHPAD_KEY: self.construct_scratchpad(intermediate_steps)}
        outputs = await self.llm_chain.ainvoke(full_inputs, callbacks=callbacks)
        decision = await self.output_parser.parse(outputs.get_string(self.llm_chain.output_key))
        if isinstance(decision, AgentFinish):
            return decision
        return [decision]


class AgentExecutor(Chain):
    """执行 Agent 循环的 chain

    每一轮调用 agent.aplan，执行返回的工具调用并记录观察结果，直到 Agent 给出最终答案。
    任何错误都会中止执行，已完成的步骤挂在异常的 intermediate_steps 属性上。
    """

    def __init__(
        self,
        agent: BaseAgent,
        tools: Sequence[Tool],
        max_iterations: int | None = 15,
        return_intermediate_steps: bool = False,
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        """初始化 AgentExecutor

        Args:
            agent: Agent
            tools: 可用工具
            max_iterations: 最大规划轮数，None 表示不限制
            return_intermediate_steps: 是否在输出中附带执行步骤（key 为 intermediate_steps）
            memory: 记忆
            callbacks: 回调
            verbose: 是否挂载日志回调

        Raises:
            ChainConfigError: 工具名重复或 max_iterations 非正数
        """
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        names = [tool.name for tool in tools]
        if len(set(names)) != len(names):
            raise ChainConfigError(f"Tool names must be unique, got {names}")
        if max_iterations is not None and max_iterations <= 0:
            raise ChainConfigError("max_iterations must be positive")

        self.agent = agent
        self.tools = {tool.name: tool for tool in tools}
        self.max_iterations = max_iterations
        self.return_intermediate_steps = return_intermediate_steps

    @classmethod
    def from_agent_and_tools(cls, agent: BaseAgent, tools: Sequence[Tool], **kwargs: Any) -> "AgentExecutor":
        return cls(agent, tools, **kwargs)

    @property
    def input_keys(self) -> list[str]:
        return self.agent.input_keys

    @property
    def output_keys(self) -> list[str]:
        if self.return_intermediate_steps:
            return [*self.agent.output_keys, "intermediate_steps"]
        return self.agent.output_keys

    def _get_tool(self, tool_name: str) -> Tool:
        try:
            return self.tools[tool_name]
        except KeyError:
            raise ToolNotFoundError(tool_name) from None

    def _should_continue(self, iterations: int) -> bool:
        return self.max_iterations is None or iterations < self.max_iterations

    async def _iter_events(
        self,
        inputs: ChainValues,
        steps: list[AgentStep],
        run_manager: CallbackManager,
    ) -> AsyncIterator[AgentStream]:
        iterations = 0
        while self._should_continue(iterations):
            logger.debug(f"AgentExecutor iteration {iterations + 1}/{self.max_iterations or 'unbounded'}")
            try:
                decision = await self.agent.aplan(steps, inputs, callbacks=run_manager.handlers)

                if isinstance(decision, AgentFinish):
                    await run_manager.on_agent_finish(decision)
                    yield AgentStream(event_type="thought", content=decision.log)
                    content = decision.return_values.get(self.agent.output_keys[0])
                    yield AgentStream(event_type="content", content=content, finish=decision)
                    return

                if decision:
                    yield AgentStream(event_type="thought", content=decision[0].log)
                for action in decision:
                    await run_manager.on_agent_action(action)
                    yield AgentStream(event_type="action", content=action.tool_input, action=action)

                    tool = self._get_tool(action.tool)
                    logger.info(f"AgentExecutor executing tool: {action.tool}")
                    observation = await tool.ainvoke(action.tool_input, callbacks=run_manager.handlers)

                    step = AgentStep(action=action, observation=observation)
                    steps.append(step)
                    yield AgentStream(event_type="observation", content=observation, step=step)
            except Exception as e:
                e.intermediate_steps = list(steps)  # type: ignore[attr-defined]
                logger.error(f"AgentExecutor failed after {len(steps)} steps: {e}")
                yield AgentStream(event_type="error", content=str(e), error=e)
                raise
            iterations += 1

        logger.warning(f"AgentExecutor reached max iterations: {self.max_iterations}")
        yield AgentStream(
            event_type="max_iterations_reached",
            content=f"Agent reached maximum iterations ({self.max_iterations})",
        )
        error = MaxIterationsError(self.max_iterations)  # type: ignore[arg-type]
        error.intermediate_steps = list(steps)  # type: ignore[attr-defined]
        raise error

    def _build_outputs(self, finish: AgentFinish, steps: list[AgentStep]) -> dict[str, Any]:
        outputs = dict(finish.return_values)
        if self.return_intermediate_steps:
            outputs["intermediate_steps"] = list(steps)
        return outputs

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        steps: list[AgentStep] = []
        finish: AgentFinish | None = None
        async for event in self._iter_events(inputs, steps, run_manager):
            if event.finish is not None:
                finish = event.finish

        if finish is None:
            raise AgentError("Agent stopped without a final answer")
        logger.debug(f"AgentExecutor finished in {len(steps)} steps: {truncate_content(finish.log)}")
        return self._build_outputs(finish, steps)

    async def astream(  # type: ignore[override]
        self,
        input: Mapping[str, Any],
        callbacks: Sequence[BaseCallbackHandler] | None = None,
    ) -> AsyncIterator[AgentStream]:
        """流式执行 Agent

        回调和记忆的处理与 ainvoke 相同：开始时触发 on_chain_start，
        产出 content 事件之前触发 on_chain_end 并保存记忆，失败时触发 on_chain_error

        Yields:
            AgentStream 事件，最后一个事件是 content（正常结束）、error 或 max_iterations_reached
        """
        run_manager, inputs, values = await self._start_run(input, callbacks)

        steps: list[AgentStep] = []
        ended = False
        try:
            async for event in self._iter_events(values, steps, run_manager):
                if event.finish is not None:
                    outputs = self._select_outputs(self._build_outputs(event.finish, steps))
                    ended = True
                    await self._end_run(run_manager, inputs, outputs)
                yield event
        except Exception as e:
            if not ended:
                await run_manager.on_chain_error(self.chain_type, e)
            raise


__all__ = [
    "MRKL_PREFIX",
    "MRKL_INSTRUCTIONS",
    "MRKL_SUFFIX",
    "AgentStream",
    "BaseAgent",
    "ZeroShotReactAgent",
    "AgentExecutor",
]
