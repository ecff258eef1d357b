"""
chainkit 模块的 conftest.py

定义测试所需的 fixtures
"""

import os

import pytest

from chainkit.types import ChatMessage, Document

# 获取环境变量配置
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL_NAME = os.getenv("OPENAI_MODEL_NAME")


# 跳过测试的条件
skip_if_no_api_key = pytest.mark.skipif(not OPENAI_API_KEY, reason="OPENAI_API_KEY not set in environment")


class FakeStreamingBody:
    """模拟 aiobotocore 的 StreamingBody"""

    def __init__(self, payload: bytes):
        self.payload = payload

    async def read(self) -> bytes:
        return self.payload


class FakeEventStream:
    """模拟 aiobotocore 的 EventStream，按顺序产出 chunk 事件"""

    def __init__(self, chunks: list[bytes]):
        self.chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield {"chunk": {"bytes": chunk}}


class FakeBedrockClient:
    """模拟 bedrock-runtime client，记录请求参数"""

    def __init__(self, payload: bytes = b"{}", stream_chunks: list[bytes] | None = None, error: Exception | None = None):
        self.payload = payload
        self.stream_chunks = stream_chunks or []
        self.error = error
        self.requests: list[dict] = []

    async def invoke_model(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"body": FakeStreamingBody(self.payload)}

    async def invoke_model_with_response_stream(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"body": FakeEventStream(self.stream_chunks)}


class FakeSageMakerClient:
    """模拟 sagemaker-runtime client"""

    def __init__(self, payload: bytes = b"{}", error: Exception | None = None):
        self.payload = payload
        self.error = error
        self.requests: list[dict] = []

    async def invoke_endpoint(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"Body": FakeStreamingBody(self.payload)}


@pytest.fixture
def sample_chat_messages():
    """示例聊天消息"""
    return [
        ChatMessage.system("You are a helpful assistant."),
        ChatMessage.human("Hello, how are you?"),
    ]


@pytest.fixture
def sample_documents():
    """示例文档"""
    return [
        Document(page_content="Why don't scientists trust atoms? Because they make up everything!"),
        Document(page_content="Why did the bicycle fall over? Because it was two-tired!", metadata={"source": "jokes"}),
    ]
