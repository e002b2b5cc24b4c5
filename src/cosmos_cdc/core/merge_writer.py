"""
合并写入器 - 暂存表 + MERGE 的原子批量写入，并在同一事务中推进断点
"""

import asyncio
from typing import Dict, List

from cosmos_cdc.errors import MergeFailed, SyncError
from cosmos_cdc.models.record import DestinationRow
from cosmos_cdc.storage.checkpoint import CheckpointStore
from cosmos_cdc.targets.base import BaseWarehouse
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)


def collapse_by_key(rows: List[DestinationRow]) -> List[DestinationRow]:
    """
    同一主键只保留批次中最后出现的行

    批次按变更序列号升序排列，因此保留的是最新版本。
    结果保持各主键最后一次出现的相对顺序。
    """
    latest: Dict[str, DestinationRow] = {}
    for row in rows:
        latest.pop(row.id, None)
        latest[row.id] = row
    return list(latest.values())


class MergeWriter:
    """
    合并写入器

    执行顺序:
        1. 创建与目标表同构的临时暂存表
        2. 参数化批量写入暂存表
        3. 暂存表按主键 MERGE 到目标表
        4. 推进断点
        5. 删除暂存表
    2~4 在同一事务中提交，失败则全部回滚；暂存表在任何退出路径上都会被删除。
    """

    def __init__(self, warehouse: BaseWarehouse, checkpoint_store: CheckpointStore):
        """
        初始化合并写入器

        参数:
            warehouse: 目标数仓连接
            checkpoint_store: 断点存储（必须与 warehouse 同一连接）
        """
        if checkpoint_store.warehouse is not warehouse:
            raise ValueError("断点存储必须与合并写入器共用同一数仓连接")
        self.warehouse = warehouse
        self.checkpoint_store = checkpoint_store

    async def merge_and_checkpoint(
        self,
        rows: List[DestinationRow],
        entity: str,
        new_sequence: int
    ) -> int:
        """
        原子地合并一批行并推进断点

        参数:
            rows: 按变更序列号升序的目标行
            entity: 实体名
            new_sequence: 本批次最大变更序列号

        返回:
            合并的行数（按主键去重后）；空批次返回 0 且不推进断点

        异常:
            MergeFailed: 任一步骤失败，目标表与断点保持不变
            CheckpointCorrupt: 断点行缺失或重复，事务已回滚
        """
        if not rows:
            logger.debug("merge_skipped_empty_batch", entity=entity)
            return 0

        return await asyncio.to_thread(self._merge_unit, rows, entity, new_sequence)

    def _merge_unit(
        self,
        rows: List[DestinationRow],
        entity: str,
        new_sequence: int
    ) -> int:
        unique_rows = collapse_by_key(rows)
        try:
            with self.warehouse.staging_table() as staging:
                with self.warehouse.transaction():
                    self.warehouse.executemany(
                        self.warehouse.insert_staging_sql(staging),
                        [row.to_params() for row in unique_rows]
                    )
                    self.warehouse.execute(self.warehouse.merge_sql(staging))
                    self.checkpoint_store.advance_watermark(entity, new_sequence)
        except SyncError:
            raise
        except Exception as e:
            logger.error(
                "merge_failed",
                entity=entity,
                table=self.warehouse.table,
                count=len(unique_rows),
                error=str(e)
            )
            raise MergeFailed(
                f"合并写入 {self.warehouse.table} 失败",
                entity=entity,
                phase="merging",
                cause=e
            ) from e

        logger.info(
            "merge_committed",
            entity=entity,
            table=self.warehouse.table,
            rows=len(rows),
            merged=len(unique_rows),
            watermark=new_sequence
        )
        return len(unique_rows)
