"""
断点持久化存储 - 断点保存在目标数仓的断点表中
"""

import asyncio
from typing import List

from cosmos_cdc.errors import CheckpointCorrupt, DestinationUnavailable
from cosmos_cdc.models.position import Checkpoint
from cosmos_cdc.targets.base import (
    CHECKPOINT_ENTITY_COLUMN,
    CHECKPOINT_SEQUENCE_COLUMN,
    BaseWarehouse,
)
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)


class CheckpointStore:
    """
    断点存储管理器

    每个实体在断点表中恰好一行：(TABLENAME, TIME)。
    断点只由合并写入器在其事务内推进，且永不后退。
    """

    def __init__(self, warehouse: BaseWarehouse):
        """
        初始化断点存储

        参数:
            warehouse: 目标数仓连接
        """
        self.warehouse = warehouse
        self.table = warehouse.checkpoint_table

    # ========================================================================
    # 读取
    # ========================================================================

    async def get_watermark(self, entity: str) -> int:
        """
        读取实体断点，不存在时以 0 初始化

        参数:
            entity: 实体名

        返回:
            最后已同步的变更序列号

        异常:
            DestinationUnavailable: 数仓不可达或读取失败
            CheckpointCorrupt: 实体存在多行断点
        """
        return await asyncio.to_thread(self.get_or_init, entity)

    def get_or_init(self, entity: str) -> int:
        """get_watermark 的阻塞实现"""
        try:
            with self.warehouse.transaction():
                rows = self._select(entity)
                if not rows:
                    self.warehouse.execute(
                        f"INSERT INTO {self.table} "
                        f"({CHECKPOINT_ENTITY_COLUMN}, {CHECKPOINT_SEQUENCE_COLUMN}) "
                        f"VALUES (?, ?)",
                        (entity, 0)
                    )
                    logger.info("checkpoint_initialized", entity=entity)
                    return 0
        except self.warehouse.errors as e:
            logger.error("checkpoint_read_failed", entity=entity, error=str(e))
            raise DestinationUnavailable(
                "读取断点失败", entity=entity, phase="reading_checkpoint", cause=e
            ) from e

        return self._single_value(entity, rows)

    def list_checkpoints(self) -> List[Checkpoint]:
        """列出断点表中的全部断点"""
        rows = self.warehouse.fetchall(
            f"SELECT {CHECKPOINT_ENTITY_COLUMN}, {CHECKPOINT_SEQUENCE_COLUMN} "
            f"FROM {self.table} ORDER BY {CHECKPOINT_ENTITY_COLUMN}"
        )
        return [
            Checkpoint(entity=row[0], last_sequence=int(row[1] or 0))
            for row in rows
        ]

    # ========================================================================
    # 推进
    # ========================================================================

    def advance_watermark(self, entity: str, new_sequence: int) -> bool:
        """
        推进实体断点

        必须在合并写入器的事务内调用。new_sequence 不大于当前值时不做任何修改。

        参数:
            entity: 实体名
            new_sequence: 新断点

        返回:
            断点是否被更新

        异常:
            CheckpointCorrupt: 实体断点行数不为一
        """
        if not self.warehouse.in_transaction():
            raise RuntimeError("advance_watermark 必须在事务内调用")

        current = self._single_value(entity, self._select(entity))
        if new_sequence <= current:
            logger.info(
                "checkpoint_not_advanced",
                entity=entity,
                current=current,
                requested=new_sequence
            )
            return False

        self.warehouse.execute(
            f"UPDATE {self.table} SET {CHECKPOINT_SEQUENCE_COLUMN} = ? "
            f"WHERE {CHECKPOINT_ENTITY_COLUMN} = ?",
            (new_sequence, entity)
        )
        logger.debug(
            "checkpoint_advanced",
            entity=entity,
            previous=current,
            watermark=new_sequence
        )
        return True

    def _select(self, entity: str) -> List[tuple]:
        return self.warehouse.fetchall(
            f"SELECT {CHECKPOINT_SEQUENCE_COLUMN} FROM {self.table} "
            f"WHERE {CHECKPOINT_ENTITY_COLUMN} = ?",
            (entity,)
        )

    def _single_value(self, entity: str, rows: List[tuple]) -> int:
        if len(rows) != 1:
            logger.error("checkpoint_corrupt", entity=entity, rows=len(rows))
            raise CheckpointCorrupt(
                f"断点表中实体行数应为 1，实际为 {len(rows)}",
                entity=entity,
                phase="checkpoint"
            )
        value = rows[0][0]
        return int(value) if value is not None else 0
