from typing import Any
from collections.abc import Mapping, Sequence


def truncate_content(content: str | None, truncate: bool = True, max_length: int = 100) -> str:
    """Truncate content for logging

    Args:
        content: Content to truncate
        truncate: Whether to truncate
        max_length: Maximum length before truncation

    Returns:
        Truncated or original content
    """
    if not content:
        return ""

    if not truncate or len(content) <= max_length:
        return content

    return content[:max_length] + f"... (truncated, total {len(content)} chars)"


def describe_value(value: Any, max_length: int = 100) -> str:
    """日志友好的值描述

    字符串截断，序列只显示元素数量和元素类型
    """
    if isinstance(value, str):
        return truncate_content(value, True, max_length)
    if isinstance(value, Mapping):
        return format_dict_for_log(dict(value), max_value_length=max_length)
    if isinstance(value, Sequence):
        if not value:
            return "[]"
        return f"[{len(value)} x {type(value[0]).__name__}]"
    return str(value)[:max_length]


def format_dict_for_log(data: Mapping[str, Any] | None, max_items: int = 10, max_value_length: int = 100) -> str:
    """Format dictionary for logging

    Args:
        data: Dictionary to format
        max_items: Maximum number of items to show
        max_value_length: Maximum length for values

    Returns:
        Formatted string representation
    """
    if not data:
        return "{}"

    items = list(data.items())[:max_items]
    formatted = {key: describe_value(value, max_value_length) for key, value in items}

    if len(data) > max_items:
        return f"{formatted} ... and {len(data) - max_items} more items"

    return str(formatted)
