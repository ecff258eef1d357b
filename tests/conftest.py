import os

os.environ.setdefault("environment", "test")

import pytest

from chainkit.providers.fake import FakeChatModel, FakeLLM
from core.logger import setup_loguru

setup_loguru("DEBUG")


@pytest.fixture
def fake_llm():
    """返回固定响应的补全模型"""
    return FakeLLM(responses=["fake answer"])


@pytest.fixture
def fake_chat_model():
    """返回固定响应的聊天模型"""
    return FakeChatModel(responses=["fake chat answer"])
