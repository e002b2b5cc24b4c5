"""
同步异常定义 - 每次运行的所有失败都以这些类型向调用方抛出
"""

from typing import Optional


class SyncError(Exception):
    """
    同步错误基类

    属性:
        entity: 同步实体名（如 Organization）
        phase: 出错阶段（如 fetching、merging）
        cause: 底层异常
    """

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        phase: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.entity = entity
        self.phase = phase
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.entity:
            parts.append(f"entity={self.entity}")
        if self.phase:
            parts.append(f"phase={self.phase}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)


class SecretUnavailable(SyncError):
    """密钥获取失败"""


class SourceUnavailable(SyncError):
    """源文档库连接或查询失败"""


class DestinationUnavailable(SyncError):
    """目标数仓连接或读取失败"""


class MergeFailed(SyncError):
    """暂存、合并或断点推进任一步骤失败"""


class CheckpointCorrupt(SyncError):
    """断点表中实体行数不为一"""
