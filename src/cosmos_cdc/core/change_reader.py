"""
变更读取器 - 按变更序列号分批读取源文档
"""

from typing import Any, Dict, List, Set

from cosmos_cdc.models.record import ChangeRecord
from cosmos_cdc.sources.base import BaseSourceClient
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)


class ChangeReader:
    """
    变更读取器

    每次调用 fetch_batch 都重新查询源端，返回序列号严格大于断点的
    一批记录（升序）。分页按序列号值包含边界：若一批恰好装满，
    会补齐所有与最后一条同序列号的记录，保证同序列号的记录
    总在同一批中，不会因断点推进而被跳过。
    """

    def __init__(self, source: BaseSourceClient):
        """
        初始化变更读取器

        参数:
            source: 源文档库客户端
        """
        self.source = source

    async def fetch_batch(self, after_sequence: int, limit: int) -> List[ChangeRecord]:
        """
        获取一批变更记录

        参数:
            after_sequence: 当前断点（不含）
            limit: 批量大小

        返回:
            ChangeRecord 列表，按 change_sequence 升序；无新变更时为空列表

        异常:
            SourceUnavailable: 源端连接/认证/查询失败或超时
        """
        if limit < 1:
            raise ValueError("limit 必须大于 0")

        documents = await self.source.query_changes(after_sequence, limit)
        records = self._to_records(documents)

        if len(documents) >= limit and records:
            records = await self._complete_tail(records)

        # 源端已按序列号排序，这里再稳定排序一次以防补齐打乱顺序
        records.sort(key=lambda r: r.change_sequence)

        logger.debug(
            "batch_fetched",
            source=self.source.name,
            after=after_sequence,
            count=len(records),
            last=records[-1].change_sequence if records else None
        )
        return records

    async def _complete_tail(self, records: List[ChangeRecord]) -> List[ChangeRecord]:
        """补齐与批次最后一条同序列号、但未被 TOP 截入的记录"""
        boundary = records[-1].change_sequence
        seen: Set[str] = {r.id for r in records if r.change_sequence == boundary}

        tail = self._to_records(await self.source.query_at_sequence(boundary))
        missing = [r for r in tail if r.id not in seen]
        if missing:
            logger.info(
                "batch_boundary_tie_completed",
                source=self.source.name,
                sequence=boundary,
                added=len(missing)
            )
        return records + missing

    def _to_records(self, documents: List[Dict[str, Any]]) -> List[ChangeRecord]:
        records: List[ChangeRecord] = []
        for document in documents:
            try:
                records.append(ChangeRecord.from_document(document))
            except ValueError as e:
                logger.warning(
                    "document_skipped",
                    source=self.source.name,
                    id=document.get("id"),
                    error=str(e)
                )
        return records
