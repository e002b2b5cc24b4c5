"""
断点存储与 SQLite 数仓单元测试 (unittest)
"""

import sqlite3
import unittest
from unittest.mock import patch

from cosmos_cdc.errors import CheckpointCorrupt, DestinationUnavailable
from cosmos_cdc.storage.checkpoint import CheckpointStore
from cosmos_cdc.targets.sqlite_warehouse import SQLiteWarehouse

from conftest import TempWarehouse


class TestCheckpointStore(unittest.TestCase):
    """CheckpointStore 测试"""

    def setUp(self):
        self.temp = TempWarehouse()
        self.warehouse = self.temp.warehouse
        self.store = CheckpointStore(self.warehouse)

    def tearDown(self):
        self.temp.close()

    def test_init_missing_entity(self):
        """测试首次读取时以 0 初始化"""
        self.assertEqual(self.store.get_or_init("Organization"), 0)
        self.assertEqual(self.temp.checkpoint_rows(), [(0,)])

    def test_init_is_idempotent(self):
        """测试重复读取不会插入多行"""
        self.store.get_or_init("Organization")
        self.store.get_or_init("Organization")

        self.assertEqual(len(self.temp.checkpoint_rows()), 1)

    def test_read_existing(self):
        """测试读取已有断点"""
        self.temp.set_checkpoint(1700000000)

        self.assertEqual(self.store.get_or_init("Organization"), 1700000000)

    def test_duplicate_rows_corrupt(self):
        """测试多行断点抛出 CheckpointCorrupt"""
        self.temp.set_checkpoint(100)
        self.warehouse.execute(
            "INSERT INTO UPDATETIME (TABLENAME, TIME) VALUES (?, ?)",
            ("Organization", 200)
        )

        with self.assertRaises(CheckpointCorrupt) as ctx:
            self.store.get_or_init("Organization")
        self.assertEqual(ctx.exception.entity, "Organization")

    def test_entities_are_independent(self):
        """测试不同实体互不影响"""
        self.temp.set_checkpoint(500, entity="Other")

        self.assertEqual(self.store.get_or_init("Organization"), 0)
        self.assertEqual(self.store.get_or_init("Other"), 500)

    def test_advance(self):
        """测试推进断点"""
        self.temp.set_checkpoint(100)

        with self.warehouse.transaction():
            advanced = self.store.advance_watermark("Organization", 150)

        self.assertTrue(advanced)
        self.assertEqual(self.temp.checkpoint_rows(), [(150,)])

    def test_never_moves_backwards(self):
        """测试不大于当前值时不修改"""
        self.temp.set_checkpoint(100)

        for value in (100, 50):
            with self.subTest(value=value):
                with self.warehouse.transaction():
                    advanced = self.store.advance_watermark("Organization", value)
                self.assertFalse(advanced)
                self.assertEqual(self.temp.checkpoint_rows(), [(100,)])

    def test_advance_requires_transaction(self):
        """测试事务外推进报错"""
        self.temp.set_checkpoint(100)

        with self.assertRaises(RuntimeError):
            self.store.advance_watermark("Organization", 150)

    def test_advance_missing_row_corrupt(self):
        """测试断点行缺失时推进失败"""
        with self.assertRaises(CheckpointCorrupt):
            with self.warehouse.transaction():
                self.store.advance_watermark("Organization", 150)

    def test_advance_rolled_back(self):
        """测试事务回滚时断点不变"""
        self.temp.set_checkpoint(100)

        with self.assertRaises(RuntimeError):
            with self.warehouse.transaction():
                self.store.advance_watermark("Organization", 150)
                raise RuntimeError("boom")

        self.assertEqual(self.temp.checkpoint_rows(), [(100,)])

    def test_list_checkpoints(self):
        """测试列出断点"""
        self.temp.set_checkpoint(100)
        self.temp.set_checkpoint(7, entity="Account")

        checkpoints = self.store.list_checkpoints()

        self.assertEqual(
            [(cp.entity, cp.last_sequence) for cp in checkpoints],
            [("Account", 7), ("Organization", 100)]
        )

    def test_read_failure_is_destination_unavailable(self):
        """测试数仓错误转为 DestinationUnavailable"""
        self.warehouse.execute("DROP TABLE UPDATETIME")

        with self.assertRaises(DestinationUnavailable) as ctx:
            self.store.get_or_init("Organization")
        self.assertIsInstance(ctx.exception.cause, sqlite3.Error)


class TestGetWatermark(unittest.IsolatedAsyncioTestCase):
    """异步读取断点测试"""

    def setUp(self):
        self.temp = TempWarehouse()
        self.store = CheckpointStore(self.temp.warehouse)

    def tearDown(self):
        self.temp.close()

    async def test_get_watermark(self):
        """测试在线程中读取断点"""
        self.temp.set_checkpoint(42)

        self.assertEqual(await self.store.get_watermark("Organization"), 42)


class TestSQLiteWarehouse(unittest.TestCase):
    """SQLiteWarehouse 测试"""

    def setUp(self):
        self.temp = TempWarehouse()
        self.warehouse = self.temp.warehouse

    def tearDown(self):
        self.temp.close()

    def test_tables_created(self):
        """测试连接时建表"""
        tables = {
            row[0] for row in self.warehouse.fetchall(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            )
        }
        self.assertIn("ORGANIZATION", tables)
        self.assertIn("UPDATETIME", tables)
        self.assertTrue(self.warehouse.is_connected())

    def test_nested_transaction_rejected(self):
        """测试不支持嵌套事务"""
        with self.warehouse.transaction():
            with self.assertRaises(RuntimeError):
                with self.warehouse.transaction():
                    pass

    def test_commit_failure_rolls_back(self):
        """测试提交失败时回滚，连接可以开始新事务"""
        commit = self.warehouse._commit

        with patch.object(
            self.warehouse, "_commit", side_effect=sqlite3.OperationalError("database is locked")
        ):
            with self.assertRaises(sqlite3.OperationalError):
                with self.warehouse.transaction():
                    self.warehouse.execute(
                        "INSERT INTO UPDATETIME (TABLENAME, TIME) VALUES (?, ?)",
                        ("Organization", 5)
                    )

        self.assertFalse(self.warehouse.in_transaction())
        self.assertEqual(self.temp.checkpoint_rows(), [])

        with self.warehouse.transaction():
            self.warehouse.execute(
                "INSERT INTO UPDATETIME (TABLENAME, TIME) VALUES (?, ?)",
                ("Organization", 7)
            )
        self.assertEqual(self.temp.checkpoint_rows(), [(7,)])
        self.assertIs(self.warehouse._commit, commit)

    def test_staging_table_dropped(self):
        """测试暂存表在异常时也被删除"""
        with self.assertRaises(ValueError):
            with self.warehouse.staging_table() as staging:
                self.assertIn(staging, self.temp.temp_tables())
                raise ValueError("boom")

        self.assertEqual(self.temp.temp_tables(), [])

    def test_merge_upserts(self):
        """测试暂存表合并：存在覆盖，不存在插入"""
        self.warehouse.execute(
            "INSERT INTO ORGANIZATION VALUES (?, ?, ?, ?, ?, ?, ?)",
            ("A", "old", "", 0, "", 0, 1)
        )

        with self.warehouse.staging_table() as staging:
            self.warehouse.executemany(
                self.warehouse.insert_staging_sql(staging),
                [("A", "new", "[]", 1, "{}", 0, 5), ("B", "b", "", 0, "", 1, 6)]
            )
            self.warehouse.execute(self.warehouse.merge_sql(staging))

        self.assertEqual(self.temp.rows(), [
            ("A", "new", "[]", 1, "{}", 0, 5),
            ("B", "b", "", 0, "", 1, 6),
        ])

    def test_connect_failure(self):
        """测试无法打开数据库"""
        warehouse = SQLiteWarehouse(f"{self.temp.db_path}/not-a-dir/w.db")

        with self.assertRaises(DestinationUnavailable):
            warehouse.connect()
        self.assertFalse(warehouse.is_connected())


if __name__ == "__main__":
    unittest.main()
