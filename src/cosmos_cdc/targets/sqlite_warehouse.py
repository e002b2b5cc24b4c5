"""
SQLite 目标数仓实现（本地开发与测试）
"""

import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Sequence

from cosmos_cdc.errors import DestinationUnavailable
from cosmos_cdc.targets.base import (
    CHECKPOINT_ENTITY_COLUMN,
    CHECKPOINT_SEQUENCE_COLUMN,
    COLUMNS,
    KEY_COLUMN,
    BaseWarehouse,
)
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)


class SQLiteWarehouse(BaseWarehouse):
    """
    SQLite 数仓

    用 INSERT ... ON CONFLICT DO UPDATE 代替 MERGE。
    连接以自动提交模式打开，事务由 BEGIN/COMMIT/ROLLBACK 显式控制。
    连接时自动建表；断点表不加唯一约束，与 Snowflake 保持一致。
    """

    errors = (sqlite3.Error,)

    def __init__(
        self,
        db_path: str,
        table: str = "ORGANIZATION",
        checkpoint_table: str = "UPDATETIME",
        timeout: float = 30.0
    ):
        super().__init__(
            name=f"sqlite:{db_path}", table=table, checkpoint_table=checkpoint_table
        )
        self.db_path = db_path
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """打开数据库并确保表结构存在"""
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            # 调用方通过 asyncio.to_thread 使用连接，线程不固定
            self._conn = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            self._ensure_tables()
        except (sqlite3.Error, OSError) as e:
            logger.error("sqlite_connect_failed", destination=self.name, error=str(e))
            self.disconnect()
            raise DestinationUnavailable(
                f"无法打开 SQLite 数仓: {self.db_path}", phase="connect", cause=e
            ) from e

        self._connected = True
        logger.info("sqlite_connected", destination=self.name)

    def disconnect(self) -> None:
        """关闭连接"""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._connected = False

    def _ensure_tables(self) -> None:
        self._require().executescript(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                ID TEXT PRIMARY KEY,
                NAME TEXT,
                SCALEUNITS TEXT,
                ISDELETED BOOLEAN,
                SERVICESTATUSES TEXT,
                ISINMAINTENANCE BOOLEAN,
                TIMESTAMP INTEGER
            );
            CREATE TABLE IF NOT EXISTS {self.checkpoint_table} (
                {CHECKPOINT_ENTITY_COLUMN} TEXT NOT NULL,
                {CHECKPOINT_SEQUENCE_COLUMN} INTEGER NOT NULL DEFAULT 0
            );
        """)

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("SQLite 数仓未连接")
        return self._conn

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        cursor = self._require().execute(sql, tuple(params or ()))
        return cursor.rowcount

    def executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> None:
        self._require().executemany(sql, [tuple(row) for row in rows])

    def fetchall(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        cursor = self._require().execute(sql, tuple(params or ()))
        return [tuple(row) for row in cursor.fetchall()]

    def _begin(self) -> None:
        self._require().execute("BEGIN")

    def _commit(self) -> None:
        self._require().execute("COMMIT")

    def _rollback(self) -> None:
        conn = self._require()
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def create_staging_sql(self, staging: str) -> str:
        return f"CREATE TEMP TABLE {staging} AS SELECT * FROM {self.table} WHERE 0"

    def merge_sql(self, staging: str) -> str:
        columns = ", ".join(COLUMNS)
        updates = ", ".join(
            f"{col} = excluded.{col}" for col in COLUMNS if col != KEY_COLUMN
        )
        # SELECT 后的 WHERE true 用于消除 ON CONFLICT 的解析歧义
        return (
            f"INSERT INTO {self.table} ({columns}) "
            f"SELECT {columns} FROM {staging} WHERE true "
            f"ON CONFLICT({KEY_COLUMN}) DO UPDATE SET {updates}"
        )
