"""
Snowflake 数仓单元测试 (unittest，不连接真实服务)
"""

import unittest
from unittest.mock import MagicMock, patch

from snowflake.connector.errors import DatabaseError

from cosmos_cdc.errors import DestinationUnavailable
from cosmos_cdc.targets.snowflake_warehouse import (
    SnowflakeWarehouse,
    parse_connection_string,
)

CONNECTION_STRING = (
    "account=xy12345;user=SYNC;password={passcode};db=ANALYTICS;"
    "schema=PUBLIC;warehouse=COMPUTE_WH"
)


class TestParseConnectionString(unittest.TestCase):
    """连接串解析测试"""

    def test_parse(self):
        """测试解析并替换口令"""
        params = parse_connection_string(CONNECTION_STRING, "pw")

        self.assertEqual(params, {
            "account": "xy12345",
            "user": "SYNC",
            "password": "pw",
            "database": "ANALYTICS",
            "schema": "PUBLIC",
            "warehouse": "COMPUTE_WH",
        })

    def test_whitespace_and_trailing_separator(self):
        """测试空白和结尾分号"""
        params = parse_connection_string(" Account = xy ; user=u ; ", "pw")

        self.assertEqual(params, {"account": "xy", "user": "u"})

    def test_port_is_int(self):
        """测试端口转为整数"""
        params = parse_connection_string("host=h;port=443", "pw")

        self.assertEqual(params["port"], 443)

    def test_value_may_contain_equals(self):
        """测试值中可以包含等号"""
        params = parse_connection_string("password={passcode}", "a=b")

        self.assertEqual(params["password"], "a=b")

    def test_unknown_key(self):
        """测试未知键"""
        with self.assertRaises(ValueError):
            parse_connection_string("account=xy;colour=blue", "pw")

    def test_missing_equals_does_not_leak_secret(self):
        """测试格式错误时不泄露口令"""
        with self.assertRaises(ValueError) as ctx:
            parse_connection_string("account=xy;{passcode}", "top-secret")

        self.assertNotIn("top-secret", str(ctx.exception))

    def test_passcode_with_separators(self):
        """测试口令中包含分号和等号"""
        params = parse_connection_string(
            "account=xy;password={passcode};db=D", "p@ss;word=secretTail"
        )

        self.assertEqual(params, {
            "account": "xy",
            "password": "p@ss;word=secretTail",
            "database": "D",
        })

    def test_error_with_separator_passcode_does_not_leak(self):
        """测试口令含分号时错误信息中没有口令片段"""
        with self.assertRaises(ValueError) as ctx:
            parse_connection_string("account=xy;colour={passcode}", "p@ss;word=secretTail")

        message = str(ctx.exception)
        self.assertIn("colour", message)
        self.assertNotIn("secretTail", message)
        self.assertNotIn("word", message)


class TestSnowflakeWarehouse(unittest.TestCase):
    """SnowflakeWarehouse 测试"""

    def _warehouse(self):
        return SnowflakeWarehouse(
            connection_string=CONNECTION_STRING,
            passcode="pw",
            table="ANALYTICS.PUBLIC.ORGANIZATION",
            statement_timeout=120,
        )

    @patch("snowflake.connector.connect")
    def test_connect(self, mock_connect):
        """测试连接参数"""
        warehouse = self._warehouse()

        warehouse.connect()

        kwargs = mock_connect.call_args.kwargs
        self.assertEqual(kwargs["account"], "xy12345")
        self.assertEqual(kwargs["password"], "pw")
        self.assertEqual(kwargs["paramstyle"], "qmark")
        self.assertTrue(kwargs["autocommit"])
        self.assertEqual(kwargs["network_timeout"], 120)
        self.assertTrue(warehouse.is_connected())
        self.assertEqual(warehouse.name, "snowflake:xy12345")

    @patch("snowflake.connector.connect")
    def test_connect_failure(self, mock_connect):
        """测试连接失败"""
        mock_connect.side_effect = DatabaseError(msg="auth failed")
        warehouse = self._warehouse()

        with self.assertRaises(DestinationUnavailable):
            warehouse.connect()
        self.assertFalse(warehouse.is_connected())

    @patch("snowflake.connector.connect")
    def test_transaction(self, mock_connect):
        """测试事务边界：BEGIN 后提交或回滚"""
        conn = MagicMock()
        cursor = conn.cursor.return_value.__enter__.return_value
        mock_connect.return_value = conn
        warehouse = self._warehouse()
        warehouse.connect()

        with warehouse.transaction():
            warehouse.execute("UPDATE X SET A = ?", (1,))

        cursor.execute.assert_any_call("BEGIN", None, timeout=120)
        conn.commit.assert_called_once()

        with self.assertRaises(ValueError):
            with warehouse.transaction():
                raise ValueError("boom")
        conn.rollback.assert_called_once()

    def test_staging_and_merge_sql(self):
        """测试暂存与合并语句"""
        warehouse = self._warehouse()

        self.assertEqual(
            warehouse.create_staging_sql("ORGANIZATION_STAGING_1"),
            "CREATE TEMPORARY TABLE ORGANIZATION_STAGING_1 LIKE ANALYTICS.PUBLIC.ORGANIZATION"
        )
        merge = warehouse.merge_sql("ORGANIZATION_STAGING_1")
        self.assertIn("MERGE INTO ANALYTICS.PUBLIC.ORGANIZATION t", merge)
        self.assertIn("ON t.ID = s.ID", merge)
        self.assertIn("t.TIMESTAMP = s.TIMESTAMP", merge)
        self.assertNotIn("t.ID = s.ID,", merge)
        self.assertEqual(
            warehouse.insert_staging_sql("S"),
            "INSERT INTO S (ID, NAME, SCALEUNITS, ISDELETED, SERVICESTATUSES, "
            "ISINMAINTENANCE, TIMESTAMP) VALUES (?, ?, ?, ?, ?, ?, ?)"
        )


if __name__ == "__main__":
    unittest.main()
