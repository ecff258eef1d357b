"""
LLMBashChain

让模型把问题转换成 bash 命令并在本地执行，返回命令输出
"""

import asyncio
import re
from typing import Any
from collections.abc import Sequence

from loguru import logger

from chainkit.base import LanguageModel
from chainkit.callbacks import BaseCallbackHandler, CallbackManager
from chainkit.chain.base import Chain
from chainkit.chain.exceptions import BashProcessError, OutputParserError
from chainkit.chain.llm import LLMChain
from chainkit.chain.memory import BaseMemory
from chainkit.chain.output_parser import BaseOutputParser
from chainkit.chain.prompt import PromptTemplate
from chainkit.chain.values import ChainValues
from util.general import truncate_content

BASH_PROMPT = PromptTemplate(
    """If someone asks you to perform a task, your job is to come up with a series of bash commands that will perform the task. There is no need to put "#!/bin/bash" in your answer. Make sure to reason step by step, using this format:

Question: "copy the files in the directory named 'target' into a new directory at the same level as target called 'myNewDirectory'"

I need to take the following actions:
- List all files in the directory
- Create a new directory
- Copy the files from the first directory into the second directory
```bash
ls
mkdir myNewDirectory
cp -r target/* myNewDirectory
```

That is the format. Begin!

Question: {{question}}""",
)

_BASH_BLOCK_PATTERN = re.compile(r"```bash\n(.*?)```", re.DOTALL)


class BashProcess:
    """执行 bash 命令

    多条命令用 `;` 连接后交给 `bash -c` 执行，stdout 和 stderr 合并返回
    """

    def __init__(self, strip_newlines: bool = False, return_err_output: bool = False):
        """
        Args:
            strip_newlines: 是否去除输出首尾空白
            return_err_output: 非零退出时返回输出而不是抛出 BashProcessError
        """
        self.strip_newlines = strip_newlines
        self.return_err_output = return_err_output

    async def run(self, commands: Sequence[str] | str) -> str:
        """执行命令

        Args:
            commands: 单条命令或命令列表

        Returns:
            命令输出

        Raises:
            BashProcessError: 命令以非零状态码退出
        """
        command = commands if isinstance(commands, str) else ";".join(commands)
        logger.debug(f"BashProcess run: {truncate_content(command)}")

        process = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        output = stdout.decode(errors="replace")
        if self.strip_newlines:
            output = output.strip()

        if process.returncode != 0:
            logger.warning(f"BashProcess exited with code {process.returncode}")
            if not self.return_err_output:
                raise BashProcessError(process.returncode or -1, output)

        return output


class BashOutputParser(BaseOutputParser[list[str]]):
    """从模型输出中提取 ```bash 代码块里的命令"""

    async def parse(self, text: str) -> list[str]:
        blocks = _BASH_BLOCK_PATTERN.findall(text)
        if not blocks:
            raise OutputParserError("No bash code block found in LLM output", text)
        return [line.strip() for block in blocks for line in block.splitlines() if line.strip()]


class LLMBashChain(Chain):
    """把问题交给模型生成 bash 命令，然后执行

    Example:
        >>> chain = LLMBashChain.from_llm(llm)
        >>> await chain.arun("Please write a bash script that prints 'Hello World' to the console.")
    """

    def __init__(
        self,
        llm_chain: LLMChain,
        bash_process: BashProcess | None = None,
        output_parser: BaseOutputParser[list[str]] | None = None,
        input_key: str = "question",
        output_key: str = "answer",
        memory: BaseMemory | None = None,
        callbacks: Sequence[BaseCallbackHandler] | None = None,
        verbose: bool = False,
    ):
        super().__init__(memory=memory, callbacks=callbacks, verbose=verbose)
        self.llm_chain = llm_chain
        self.bash_process = bash_process or BashProcess()
        self.output_parser = output_parser or BashOutputParser()
        self.input_key = input_key
        self.output_key = output_key

    @classmethod
    def from_llm(cls, llm: LanguageModel, prompt: PromptTemplate = BASH_PROMPT, **kwargs: Any) -> "LLMBashChain":
        return cls(LLMChain(llm, prompt, verbose=kwargs.get("verbose", False)), **kwargs)

    @property
    def input_keys(self) -> list[str]:
        return [self.input_key]

    @property
    def output_keys(self) -> list[str]:
        return [self.output_key]

    async def _call(self, inputs: ChainValues, run_manager: CallbackManager) -> dict[str, Any]:
        question = inputs.get_string(self.input_key)
        outputs = await self.llm_chain.ainvoke(
            {self.llm_chain.input_keys[0]: question},
            callbacks=run_manager.handlers,
        )
        commands = await self.output_parser.parse(outputs[self.llm_chain.output_key])
        logger.info(f"LLMBashChain running {len(commands)} commands")

        return {self.output_key: await self.bash_process.run(commands)}


__all__ = [
    "BASH_PROMPT",
    "BashProcess",
    "BashOutputParser",
    "LLMBashChain",
]
