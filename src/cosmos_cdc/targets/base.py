"""
目标数仓抽象基类
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Type

from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)

# 目标表列顺序，与 DestinationRow.to_params 一致
COLUMNS: Tuple[str, ...] = (
    "ID",
    "NAME",
    "SCALEUNITS",
    "ISDELETED",
    "SERVICESTATUSES",
    "ISINMAINTENANCE",
    "TIMESTAMP",
)
KEY_COLUMN = "ID"

# 断点表列
CHECKPOINT_ENTITY_COLUMN = "TABLENAME"
CHECKPOINT_SEQUENCE_COLUMN = "TIME"


class BaseWarehouse(ABC):
    """
    目标数仓连接抽象基类

    封装命令执行、参数化执行和事务边界，以及各方言的暂存/合并 SQL。
    所有 SQL 使用 qmark (?) 参数风格。

    方法均为阻塞调用，调用方负责放到线程中执行；
    超时由驱动层参数保证，不依赖外部取消。

    属性:
        errors: 该驱动抛出的异常基类，供上层识别数仓错误
    """

    errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, name: str, table: str, checkpoint_table: str):
        """
        初始化数仓连接

        参数:
            name: 连接标识（用于日志）
            table: 目标实体表
            checkpoint_table: 断点表
        """
        self.name = name
        self.table = table
        self.checkpoint_table = checkpoint_table
        self._connected = False
        self._in_transaction = False

    @abstractmethod
    def connect(self) -> None:
        """建立连接，失败抛出 DestinationUnavailable"""
        raise NotImplementedError

    @abstractmethod
    def disconnect(self) -> None:
        """断开连接"""
        raise NotImplementedError

    @abstractmethod
    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        执行单条命令

        返回:
            受影响行数（驱动不提供时为 -1）
        """
        raise NotImplementedError

    @abstractmethod
    def executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> None:
        """参数化批量执行"""
        raise NotImplementedError

    @abstractmethod
    def fetchall(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[tuple]:
        """执行查询并返回全部结果行"""
        raise NotImplementedError

    @abstractmethod
    def _begin(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def _commit(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def _rollback(self) -> None:
        raise NotImplementedError

    # ========================================================================
    # 事务与暂存表
    # ========================================================================

    @contextmanager
    def transaction(self) -> Iterator["BaseWarehouse"]:
        """
        事务边界

        正常退出时提交，异常时回滚并继续抛出原异常。

        示例:
            ```python
            with warehouse.transaction():
                warehouse.execute("UPDATE ...", (1,))
            ```
        """
        if self._in_transaction:
            raise RuntimeError("不支持嵌套事务")

        self._begin()
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._in_transaction = False
            self._rollback()
            raise
        self._in_transaction = False
        try:
            self._commit()
        except BaseException:
            self._rollback()
            raise

    def in_transaction(self) -> bool:
        """检查是否处于事务中"""
        return self._in_transaction

    @contextmanager
    def staging_table(self) -> Iterator[str]:
        """
        创建与目标表同构的临时暂存表，退出时（包括异常）总是删除

        删除失败只记录警告：此时事务已提交或已回滚，暂存表随会话结束释放。

        返回:
            暂存表名
        """
        base_name = self.table.rsplit(".", 1)[-1]
        staging = f"{base_name}_STAGING_{uuid.uuid4().hex[:8].upper()}"
        self.execute(self.create_staging_sql(staging))
        try:
            yield staging
        finally:
            try:
                self.execute(f"DROP TABLE IF EXISTS {staging}")
            except self.errors as e:
                logger.warning("staging_drop_failed", staging=staging, error=str(e))

    # ========================================================================
    # 方言 SQL
    # ========================================================================

    @abstractmethod
    def create_staging_sql(self, staging: str) -> str:
        """创建与目标表同构的临时表"""
        raise NotImplementedError

    @abstractmethod
    def merge_sql(self, staging: str) -> str:
        """暂存表按主键合并到目标表：存在则覆盖全部属性，不存在则插入"""
        raise NotImplementedError

    def insert_staging_sql(self, staging: str) -> str:
        """暂存表批量插入语句"""
        placeholders = ", ".join("?" for _ in COLUMNS)
        return f"INSERT INTO {staging} ({', '.join(COLUMNS)}) VALUES ({placeholders})"

    def is_connected(self) -> bool:
        """检查是否已连接"""
        return self._connected
