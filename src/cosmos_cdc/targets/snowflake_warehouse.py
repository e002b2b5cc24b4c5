"""
Snowflake 目标数仓实现
"""

from typing import Any, Dict, List, Optional, Sequence

import snowflake.connector
from snowflake.connector import SnowflakeConnection
from snowflake.connector.errors import Error as SnowflakeError

from cosmos_cdc.errors import DestinationUnavailable
from cosmos_cdc.targets.base import COLUMNS, KEY_COLUMN, BaseWarehouse
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)

# 连接串键 -> snowflake.connector.connect 参数名
_CONNECTION_KEYS: Dict[str, str] = {
    "account": "account",
    "user": "user",
    "password": "password",
    "passcode": "passcode",
    "db": "database",
    "database": "database",
    "schema": "schema",
    "warehouse": "warehouse",
    "role": "role",
    "host": "host",
    "port": "port",
    "region": "region",
    "authenticator": "authenticator",
}


def parse_connection_string(connection_string: str, passcode: str) -> Dict[str, Any]:
    """
    解析 "key=value;key=value" 形式的连接串

    先按模板切分，再只在值中把 {passcode} 替换为口令，
    口令中可以包含 ; 和 =，错误信息中不会出现口令内容。

    参数:
        connection_string: 连接串
        passcode: 口令

    返回:
        snowflake.connector.connect 的关键字参数

    异常:
        ValueError: 出现无法识别的键或格式错误

    示例:
        >>> parse_connection_string("account=xy;user=u;password={passcode};db=D", "pw")
        {'account': 'xy', 'user': 'u', 'password': 'pw', 'database': 'D'}
    """
    params: Dict[str, Any] = {}

    for part in connection_string.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError("连接串格式错误: 存在缺少 '=' 的片段")
        key, value = part.split("=", 1)
        key = key.strip().lower()
        if key not in _CONNECTION_KEYS:
            raise ValueError(f"未知的连接串键: {key}")
        params[_CONNECTION_KEYS[key]] = value.strip().replace("{passcode}", passcode)

    if "port" in params:
        params["port"] = int(params["port"])
    return params


class SnowflakeWarehouse(BaseWarehouse):
    """
    Snowflake 数仓

    使用 snowflake-connector-python，qmark 参数风格（服务端绑定）。
    Snowflake 的 DDL 会隐式提交当前事务，因此暂存表的创建和删除
    都在事务之外完成；临时表只对当前会话可见。
    """

    errors = (SnowflakeError,)

    def __init__(
        self,
        connection_string: str,
        passcode: str,
        table: str = "ORGANIZATION",
        checkpoint_table: str = "UPDATETIME",
        login_timeout: int = 60,
        statement_timeout: int = 300
    ):
        super().__init__(
            name="snowflake", table=table, checkpoint_table=checkpoint_table
        )
        self._connection_string = connection_string
        self._passcode = passcode
        self.login_timeout = login_timeout
        self.statement_timeout = statement_timeout
        self._conn: Optional[SnowflakeConnection] = None

    def connect(self) -> None:
        """建立 Snowflake 会话"""
        try:
            params = parse_connection_string(self._connection_string, self._passcode)
            self.name = f"snowflake:{params.get('account', '?')}"
            self._conn = snowflake.connector.connect(
                **params,
                paramstyle="qmark",
                autocommit=True,
                login_timeout=self.login_timeout,
                network_timeout=self.statement_timeout,
            )
        except (SnowflakeError, ValueError) as e:
            logger.error("snowflake_connect_failed", destination=self.name, error=str(e))
            raise DestinationUnavailable(
                "无法连接 Snowflake", phase="connect", cause=e
            ) from e

        self._connected = True
        logger.info("snowflake_connected", destination=self.name)

    def disconnect(self) -> None:
        """关闭会话"""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._connected = False
        logger.info("snowflake_disconnected", destination=self.name)

    def _require(self) -> SnowflakeConnection:
        if self._conn is None:
            raise SnowflakeError(msg="Snowflake 未连接")
        return self._conn

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        with self._require().cursor() as cursor:
            cursor.execute(sql, params, timeout=self.statement_timeout)
            return cursor.rowcount if cursor.rowcount is not None else -1

    def executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        with self._require().cursor() as cursor:
            cursor.executemany(sql, rows, timeout=self.statement_timeout)

    def fetchall(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        with self._require().cursor() as cursor:
            cursor.execute(sql, params, timeout=self.statement_timeout)
            return [tuple(row) for row in cursor.fetchall()]

    def _begin(self) -> None:
        self.execute("BEGIN")

    def _commit(self) -> None:
        self._require().commit()

    def _rollback(self) -> None:
        self._require().rollback()

    def create_staging_sql(self, staging: str) -> str:
        return f"CREATE TEMPORARY TABLE {staging} LIKE {self.table}"

    def merge_sql(self, staging: str) -> str:
        updates = ",\n                ".join(
            f"t.{col} = s.{col}" for col in COLUMNS if col != KEY_COLUMN
        )
        columns = ", ".join(COLUMNS)
        values = ", ".join(f"s.{col}" for col in COLUMNS)
        return f"""
            MERGE INTO {self.table} t
            USING {staging} s
            ON t.{KEY_COLUMN} = s.{KEY_COLUMN}
            WHEN MATCHED THEN UPDATE SET
                {updates}
            WHEN NOT MATCHED THEN
                INSERT ({columns})
                VALUES ({values})
        """
