"""
字段转换器 - 可空源值到稳定目标值的转换，全部为纯函数且不抛异常
"""

import json
from typing import Any


def to_text(value: Any) -> str:
    """
    转为文本

    None -> ""；字符串原样返回；其他 JSON 值序列化为紧凑 JSON。

    示例:
        >>> to_text(None)
        ''
        >>> to_text(["su-1", "su-2"])
        '["su-1","su-2"]'
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def to_flag(value: Any) -> bool:
    """
    转为布尔标记

    只有真正的 True 视为真，None 及其他值一律为 False。
    """
    return value is True
