"""
Azure Cosmos DB 源客户端实现
"""

import asyncio
from typing import Any, Dict, List, Optional

from azure.core.exceptions import AzureError
from azure.cosmos.aio import ContainerProxy, CosmosClient

from cosmos_cdc.errors import SourceUnavailable
from cosmos_cdc.models.record import SEQUENCE_FIELD
from cosmos_cdc.sources.base import BaseSourceClient
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)


class CosmosSourceClient(BaseSourceClient):
    """
    Cosmos DB 容器客户端

    使用 azure-cosmos 异步 SDK，按 _ts 系统属性读取变更。
    所有查询参数化，并受 timeout 约束。
    """

    def __init__(
        self,
        url: str,
        key: str,
        database: str,
        container: str,
        timeout: float = 30.0
    ):
        """
        初始化 Cosmos DB 客户端

        参数:
            url: 账户地址
            key: 账户密钥
            database: 数据库名
            container: 容器名
            timeout: 单次查询超时（秒）
        """
        super().__init__(name=f"{database}/{container}")
        self.url = url
        self._key = key
        self.database = database
        self.container = container
        self.timeout = timeout
        self._client: Optional[CosmosClient] = None
        self._container: Optional[ContainerProxy] = None

    async def connect(self) -> None:
        """创建客户端并校验容器可访问"""
        try:
            self._client = CosmosClient(self.url, credential=self._key)
            database = self._client.get_database_client(self.database)
            self._container = database.get_container_client(self.container)
            await asyncio.wait_for(self._container.read(), timeout=self.timeout)
        except (AzureError, asyncio.TimeoutError, ValueError) as e:
            logger.error("cosmos_connect_failed", source=self.name, error=str(e))
            await self.close()
            raise SourceUnavailable(
                f"无法连接 Cosmos DB: {self.name}", phase="connect", cause=e
            ) from e

        self._connected = True
        logger.info("cosmos_connected", source=self.name)

    async def close(self) -> None:
        """关闭客户端"""
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._container = None
        self._connected = False

    async def query_changes(
        self,
        after_sequence: int,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """按 _ts 升序查询 after_sequence 之后的文档"""
        parameters: List[Dict[str, Any]] = [{"name": "@after", "value": after_sequence}]
        if limit is not None:
            query = (
                f"SELECT TOP @limit * FROM c WHERE c.{SEQUENCE_FIELD} > @after "
                f"ORDER BY c.{SEQUENCE_FIELD} ASC"
            )
            parameters.append({"name": "@limit", "value": limit})
        else:
            query = (
                f"SELECT * FROM c WHERE c.{SEQUENCE_FIELD} > @after "
                f"ORDER BY c.{SEQUENCE_FIELD} ASC"
            )
        return await self._query(query, parameters, limit)

    async def query_at_sequence(self, sequence: int) -> List[Dict[str, Any]]:
        """查询 _ts 等于 sequence 的全部文档"""
        query = f"SELECT * FROM c WHERE c.{SEQUENCE_FIELD} = @sequence"
        return await self._query(query, [{"name": "@sequence", "value": sequence}], None)

    async def _query(
        self,
        query: str,
        parameters: List[Dict[str, Any]],
        max_item_count: Optional[int]
    ) -> List[Dict[str, Any]]:
        if self._container is None:
            raise SourceUnavailable(f"Cosmos DB 未连接: {self.name}", phase="fetching")

        async def collect() -> List[Dict[str, Any]]:
            items = self._container.query_items(
                query=query,
                parameters=parameters,
                max_item_count=max_item_count,
            )
            return [item async for item in items]

        try:
            return await asyncio.wait_for(collect(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("cosmos_query_timeout", source=self.name, timeout=self.timeout)
            raise SourceUnavailable(
                f"Cosmos DB 查询超时: {self.name}", phase="fetching", cause=e
            ) from e
        except AzureError as e:
            logger.error("cosmos_query_failed", source=self.name, error=str(e))
            raise SourceUnavailable(
                f"Cosmos DB 查询失败: {self.name}", phase="fetching", cause=e
            ) from e
