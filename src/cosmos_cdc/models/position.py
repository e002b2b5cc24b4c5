"""
同步位置（断点）与运行状态模型
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncState(str, Enum):
    """单次同步运行的状态机"""
    IDLE = "idle"  # 空闲
    READING_CHECKPOINT = "reading_checkpoint"  # 读取断点
    FETCHING = "fetching"  # 拉取变更
    PROJECTING = "projecting"  # 投影转换
    MERGING = "merging"  # 合并写入
    DONE = "done"  # 完成
    FAILED = "failed"  # 失败


class Checkpoint(BaseModel):
    """
    实体断点

    属性:
        entity: 实体名（唯一键）
        last_sequence: 最后已同步的变更序列号，0 表示从未同步
    """
    entity: str = Field(..., min_length=1, description="实体名")
    last_sequence: int = Field(default=0, ge=0, description="最后处理的变更序列号")

    model_config = ConfigDict(from_attributes=True)


class SyncRunResult(BaseModel):
    """单次 run_once 的结果"""
    entity: str = Field(..., description="实体名")
    fetched: int = Field(default=0, ge=0, description="拉取记录数")
    merged: int = Field(default=0, ge=0, description="合并行数（按主键去重后）")
    watermark_before: int = Field(default=0, ge=0, description="运行前断点")
    watermark_after: int = Field(default=0, ge=0, description="运行后断点")
    duration_seconds: float = Field(default=0.0, ge=0, description="耗时（秒）")

    @property
    def advanced(self) -> bool:
        """断点是否前进"""
        return self.watermark_after > self.watermark_before


class SyncStatus(BaseModel):
    """
    同步状态信息

    运行时状态查询返回的数据。
    """
    state: SyncState = Field(default=SyncState.IDLE, description="当前状态")
    entity: str = Field(default="", description="实体名")

    # 统计信息
    total_runs: int = Field(default=0, description="运行次数")
    total_records: int = Field(default=0, description="已合并记录总数")
    last_watermark: int = Field(default=0, description="最近一次断点")
    last_run_at: Optional[datetime] = Field(default=None, description="最近运行时间")

    # 错误信息
    last_error: Optional[str] = Field(default=None, description="最后错误信息")
    last_error_at: Optional[datetime] = Field(default=None, description="最后错误时间")

    def is_running(self) -> bool:
        """检查是否运行中"""
        return self.state not in (SyncState.IDLE, SyncState.DONE, SyncState.FAILED)

    def record_run(self, result: SyncRunResult) -> None:
        """记录一次成功运行"""
        self.total_runs += 1
        self.total_records += result.merged
        self.last_watermark = result.watermark_after
        self.last_run_at = datetime.now(timezone.utc)

    def record_error(self, error: str) -> None:
        """记录错误"""
        self.total_runs += 1
        self.last_error = error
        self.last_error_at = datetime.now(timezone.utc)
        self.last_run_at = self.last_error_at
        self.state = SyncState.FAILED
