"""
测试配置和共享工具 (unittest 兼容)

测试模块通过 `from conftest import ...` 使用这里的工具函数。
"""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from cosmos_cdc.errors import SourceUnavailable
from cosmos_cdc.models.sync_config import SyncConfig
from cosmos_cdc.sources.base import BaseSourceClient
from cosmos_cdc.targets.sqlite_warehouse import SQLiteWarehouse


# ============================================================================
# 内存源客户端
# ============================================================================

class InMemorySourceClient(BaseSourceClient):
    """
    内存中的源文档库

    行为与 Cosmos 查询一致：按 _ts 升序，TOP 截断。
    设置 fail_with 后所有查询抛出该异常。
    """

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None):
        super().__init__(name="memory")
        self.documents: List[Dict[str, Any]] = list(documents or [])
        self.fail_with: Optional[BaseException] = None
        self.queries: List[tuple] = []

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    def add(self, *documents: Dict[str, Any]) -> None:
        """写入/覆盖文档（按 id）"""
        for document in documents:
            self.documents = [d for d in self.documents if d.get("id") != document.get("id")]
            self.documents.append(document)

    def _check(self) -> None:
        if self.fail_with is not None:
            raise SourceUnavailable("源端不可用", phase="fetching", cause=self.fail_with)

    async def query_changes(
        self,
        after_sequence: int,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        self.queries.append(("changes", after_sequence, limit))
        self._check()
        matched = sorted(
            (d for d in self.documents if d["_ts"] > after_sequence),
            key=lambda d: d["_ts"]
        )
        return matched[:limit] if limit is not None else matched

    async def query_at_sequence(self, sequence: int) -> List[Dict[str, Any]]:
        self.queries.append(("at", sequence))
        self._check()
        return [d for d in self.documents if d["_ts"] == sequence]


# ============================================================================
# 数据工厂函数
# ============================================================================

def make_document(doc_id: str, ts: int, **fields: Any) -> Dict[str, Any]:
    """构造一个 Organization 源文档"""
    document: Dict[str, Any] = {
        "id": doc_id,
        "normalizedName": fields.pop("name", doc_id.upper()),
        "scaleUnits": fields.pop("scale_units", ["su-1"]),
        "isDeleted": fields.pop("is_deleted", False),
        "serviceStatuses": fields.pop("service_statuses", {"api": "ok"}),
        "isInMaintenance": fields.pop("is_in_maintenance", False),
        "_ts": ts,
    }
    document.update(fields)
    return document


# ============================================================================
# SQLite 数仓工具
# ============================================================================

class TempWarehouse:
    """临时目录中的 SQLite 数仓，close() 时删除目录"""

    def __init__(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = str(Path(self.temp_dir) / "warehouse.db")
        self.warehouse = SQLiteWarehouse(self.db_path)
        self.warehouse.connect()

    def rows(self) -> List[tuple]:
        """目标表全部行，按 ID 排序"""
        return self.warehouse.fetchall(
            f"SELECT ID, NAME, SCALEUNITS, ISDELETED, SERVICESTATUSES, "
            f"ISINMAINTENANCE, TIMESTAMP FROM {self.warehouse.table} ORDER BY ID"
        )

    def checkpoint_rows(self, entity: str = "Organization") -> List[tuple]:
        """实体断点行"""
        return self.warehouse.fetchall(
            f"SELECT TIME FROM {self.warehouse.checkpoint_table} WHERE TABLENAME = ?",
            (entity,)
        )

    def set_checkpoint(self, value: int, entity: str = "Organization") -> None:
        """直接写入断点行"""
        self.warehouse.execute(
            f"DELETE FROM {self.warehouse.checkpoint_table} WHERE TABLENAME = ?",
            (entity,)
        )
        self.warehouse.execute(
            f"INSERT INTO {self.warehouse.checkpoint_table} (TABLENAME, TIME) VALUES (?, ?)",
            (entity, value)
        )

    def temp_tables(self) -> List[str]:
        """当前连接中残留的临时表"""
        return [
            row[0] for row in self.warehouse.fetchall(
                "SELECT name FROM sqlite_temp_master WHERE type = 'table'"
            )
        ]

    def close(self) -> None:
        self.warehouse.disconnect()
        shutil.rmtree(self.temp_dir, ignore_errors=True)


# ============================================================================
# 配置工厂函数
# ============================================================================

def create_test_config(db_path: str = ":memory:", batch_size: int = 1000) -> SyncConfig:
    """返回使用 SQLite 目标和环境变量密钥的配置"""
    return SyncConfig(
        entity="Organization",
        batch_size=batch_size,
        secrets={"type": "env", "prefix": "CDC_TEST_"},
        source={"database": "LocationService", "container": "Organization"},
        destination={"type": "sqlite", "db_path": db_path},
    )


def create_test_config_yaml(db_path: str) -> str:
    """返回测试配置 YAML 字符串"""
    return f"""
entity: "Organization"
batch_size: 50
log_level: "debug"

secrets:
  type: "env"
  prefix: "CDC_TEST_"

source:
  database: "LocationService"
  container: "Organization"

destination:
  type: "sqlite"
  db_path: "{db_path}"
"""
