"""
同步引擎 - 核心协调器
"""

import time

from cosmos_cdc.core.change_reader import ChangeReader
from cosmos_cdc.core.merge_writer import MergeWriter
from cosmos_cdc.core.projector import RecordProjector
from cosmos_cdc.errors import SyncError
from cosmos_cdc.models.position import SyncRunResult, SyncState, SyncStatus
from cosmos_cdc.models.sync_config import SyncConfig
from cosmos_cdc.sources.base import BaseSourceClient
from cosmos_cdc.storage.checkpoint import CheckpointStore
from cosmos_cdc.targets.base import BaseWarehouse
from cosmos_cdc.utils.logging import get_logger, log_context

logger = get_logger(__name__)


class SyncEngine:
    """
    同步引擎 - 单次增量同步的编排

    状态流转:
        IDLE -> READING_CHECKPOINT -> FETCHING -> PROJECTING -> MERGING -> DONE
    任一步骤失败进入 FAILED。

    引擎不做内部重试，也不持有除断点外的任何持久状态；
    由外部调度器按固定间隔调用 run_once，且保证调用不重叠。
    """

    def __init__(
        self,
        config: SyncConfig,
        source: BaseSourceClient,
        warehouse: BaseWarehouse
    ):
        """
        初始化同步引擎

        参数:
            config: 同步配置
            source: 已连接的源客户端
            warehouse: 已连接的目标数仓
        """
        self.config = config
        self.entity = config.entity
        self.batch_size = config.batch_size
        self.checkpoint_store = CheckpointStore(warehouse)
        self.reader = ChangeReader(source)
        self.projector = RecordProjector()
        self.writer = MergeWriter(warehouse, self.checkpoint_store)
        self.status = SyncStatus(entity=config.entity)

    @property
    def state(self) -> SyncState:
        """当前状态"""
        return self.status.state

    def get_status(self) -> SyncStatus:
        """获取当前状态"""
        return self.status

    async def run_once(self) -> SyncRunResult:
        """
        执行一次同步

        返回:
            SyncRunResult: 本次运行统计

        异常:
            SyncError: 任一组件失败；断点与目标表保持运行前状态。
                非 SyncError 的异常包装为 SyncError，原异常作为 cause
        """
        with log_context(entity=self.entity):
            return await self._run()

    async def _run(self) -> SyncRunResult:
        started = time.monotonic()
        result = SyncRunResult(entity=self.entity)

        try:
            self._transition(SyncState.READING_CHECKPOINT)
            watermark = await self.checkpoint_store.get_watermark(self.entity)
            result.watermark_before = watermark
            result.watermark_after = watermark

            self._transition(SyncState.FETCHING)
            records = await self.reader.fetch_batch(watermark, self.batch_size)
            result.fetched = len(records)

            if records:
                self._transition(SyncState.PROJECTING)
                rows = self.projector.project_batch(records)
                new_watermark = max(r.change_sequence for r in records)

                self._transition(SyncState.MERGING)
                result.merged = await self.writer.merge_and_checkpoint(
                    rows, self.entity, new_watermark
                )
                result.watermark_after = max(watermark, new_watermark)

        except SyncError as e:
            if e.entity is None:
                e.entity = self.entity
            if e.phase is None:
                e.phase = self.status.state.value
            self._fail(e)
            raise
        except Exception as e:
            error = SyncError(
                f"同步运行异常: {type(e).__name__}",
                entity=self.entity,
                phase=self.status.state.value,
                cause=e
            )
            self._fail(error)
            raise error from e

        result.duration_seconds = time.monotonic() - started
        self._transition(SyncState.DONE)
        self.status.record_run(result)

        logger.info(
            "sync_run_complete",
            fetched=result.fetched,
            merged=result.merged,
            watermark_before=result.watermark_before,
            watermark_after=result.watermark_after,
            duration=round(result.duration_seconds, 3)
        )
        return result

    def _transition(self, state: SyncState) -> None:
        logger.debug("sync_state", previous=self.status.state.value, state=state.value)
        self.status.state = state

    def _fail(self, error: Exception) -> None:
        logger.error(
            "sync_run_failed",
            phase=getattr(error, "phase", None) or self.status.state.value,
            error_type=type(error).__name__,
            exc_info=error
        )
        self.status.record_error(str(error))
