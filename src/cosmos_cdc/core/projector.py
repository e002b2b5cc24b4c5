"""
记录投影 - 源变更记录到目标行的固定映射
"""

from typing import List

from cosmos_cdc.models.record import ChangeRecord, DestinationRow
from cosmos_cdc.utils.converters import to_flag, to_text


class RecordProjector:
    """
    记录投影器

    纯函数式映射，缺失文本字段为空串，缺失标记为 False，从不抛出异常。
    """

    def project(self, record: ChangeRecord) -> DestinationRow:
        """
        投影单条记录

        参数:
            record: 源变更记录

        返回:
            目标行
        """
        return DestinationRow(
            id=to_text(record.id),
            name=to_text(record.name),
            scale_units=to_text(record.scale_units),
            is_deleted=to_flag(record.is_deleted),
            service_statuses=to_text(record.service_statuses),
            is_in_maintenance=to_flag(record.is_in_maintenance),
            change_sequence=record.change_sequence,
        )

    def project_batch(self, records: List[ChangeRecord]) -> List[DestinationRow]:
        """按原顺序投影一批记录"""
        return [self.project(record) for record in records]
