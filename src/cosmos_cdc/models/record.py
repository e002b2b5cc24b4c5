"""
变更记录模型 - 源文档与目标行的强类型表示
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# 变更序列号字段（Cosmos DB 系统属性 _ts）
SEQUENCE_FIELD = "_ts"


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _optional_flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def _sequence(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"变更序列号类型错误: {value!r}")
    if isinstance(value, int):
        sequence = value
    elif isinstance(value, float) and value.is_integer():
        sequence = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        sequence = int(value.strip())
    else:
        raise ValueError(f"变更序列号缺失或无效: {value!r}")
    if sequence < 0:
        raise ValueError(f"变更序列号不能为负数: {sequence}")
    return sequence


class ChangeRecord(BaseModel):
    """
    源端单条实体变更

    属性:
        id: 实体标识
        name: 规范化名称
        scale_units: 扩展单元（任意 JSON 值）
        is_deleted: 删除标记
        service_statuses: 服务状态（任意 JSON 值）
        is_in_maintenance: 维护标记
        change_sequence: 源端分配的单调递增序列号，仅用于排序和断点

    示例:
        ```python
        record = ChangeRecord.from_document({
            "id": "org-1",
            "normalizedName": "ACME",
            "_ts": 1700000000,
        })
        ```
    """
    id: str = Field(default="", description="实体标识")
    name: Optional[str] = Field(default=None, description="规范化名称")
    scale_units: Optional[Any] = Field(default=None, description="扩展单元")
    is_deleted: Optional[bool] = Field(default=None, description="删除标记")
    service_statuses: Optional[Any] = Field(default=None, description="服务状态")
    is_in_maintenance: Optional[bool] = Field(default=None, description="维护标记")
    change_sequence: int = Field(..., ge=0, description="变更序列号")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ChangeRecord":
        """
        从源文档构建变更记录

        类型不符的业务字段降级为 None，不会抛出异常；
        只有变更序列号缺失或无效时抛出 ValueError。
        """
        return cls(
            id=_optional_text(document.get("id")) or "",
            name=_optional_text(document.get("normalizedName")),
            scale_units=document.get("scaleUnits"),
            is_deleted=_optional_flag(document.get("isDeleted")),
            service_statuses=document.get("serviceStatuses"),
            is_in_maintenance=_optional_flag(document.get("isInMaintenance")),
            change_sequence=_sequence(document.get(SEQUENCE_FIELD)),
        )


class DestinationRow(BaseModel):
    """
    目标数仓行

    所有可空字段都已归一化为稳定的字符串/布尔默认值。
    以 id 为主键，每个 id 至多一行。
    """
    id: str = Field(..., description="主键")
    name: str = Field(default="", description="规范化名称")
    scale_units: str = Field(default="", description="扩展单元文本")
    is_deleted: bool = Field(default=False, description="删除标记")
    service_statuses: str = Field(default="", description="服务状态文本")
    is_in_maintenance: bool = Field(default=False, description="维护标记")
    change_sequence: int = Field(default=0, ge=0, description="来源变更序列号")

    def to_params(self) -> tuple:
        """按目标表列顺序返回参数元组"""
        return (
            self.id,
            self.name,
            self.scale_units,
            self.is_deleted,
            self.service_statuses,
            self.is_in_maintenance,
            self.change_sequence,
        )
