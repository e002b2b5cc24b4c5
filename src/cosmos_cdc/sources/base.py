"""
源文档库客户端抽象基类
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class BaseSourceClient(ABC):
    """
    源文档库客户端抽象基类

    所有查询都按变更序列号升序返回原始文档（字典）。
    连接/认证/查询失败统一抛出 SourceUnavailable。
    """

    def __init__(self, name: str):
        self.name = name
        self._connected = False

    @abstractmethod
    async def connect(self) -> None:
        """建立连接"""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """关闭连接"""
        raise NotImplementedError

    @abstractmethod
    async def query_changes(
        self,
        after_sequence: int,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        查询变更序列号严格大于 after_sequence 的文档

        参数:
            after_sequence: 起始序列号（不含）
            limit: 最大返回条数，None 表示不限

        返回:
            按序列号升序排列的文档列表
        """
        raise NotImplementedError

    @abstractmethod
    async def query_at_sequence(self, sequence: int) -> List[Dict[str, Any]]:
        """
        查询变更序列号恰好等于 sequence 的全部文档

        用于批次边界上的同序列号补齐。
        """
        raise NotImplementedError

    def is_connected(self) -> bool:
        """检查是否已连接"""
        return self._connected
