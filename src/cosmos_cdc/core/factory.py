"""
组件工厂 - 根据配置构建密钥提供者、源客户端和目标数仓
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from cosmos_cdc.core.engine import SyncEngine
from cosmos_cdc.models.sync_config import (
    DestinationType,
    EnvSecretsConfig,
    KeyVaultSecretsConfig,
    SecretsType,
    SnowflakeDestinationConfig,
    SQLiteDestinationConfig,
    SyncConfig,
)
from cosmos_cdc.services.secrets import (
    BaseSecretProvider,
    EnvSecretProvider,
    KeyVaultSecretProvider,
)
from cosmos_cdc.sources.base import BaseSourceClient
from cosmos_cdc.sources.cosmos_client import CosmosSourceClient
from cosmos_cdc.targets.base import BaseWarehouse


def create_secret_provider(config: SyncConfig) -> BaseSecretProvider:
    """创建密钥提供者"""
    secrets = config.secrets
    if SecretsType(secrets.type) == SecretsType.KEYVAULT:
        assert isinstance(secrets, KeyVaultSecretsConfig)
        return KeyVaultSecretProvider(secrets.vault_url, timeout=secrets.timeout)

    assert isinstance(secrets, EnvSecretsConfig)
    return EnvSecretProvider(prefix=secrets.prefix)


async def create_source(
    config: SyncConfig,
    secrets: BaseSecretProvider
) -> BaseSourceClient:
    """创建并连接源客户端"""
    source_config = config.source
    url = await secrets.get_secret(source_config.url_secret)
    key = await secrets.get_secret(source_config.key_secret)

    source = CosmosSourceClient(
        url=url,
        key=key,
        database=source_config.database,
        container=source_config.container,
        timeout=source_config.timeout,
    )
    await source.connect()
    return source


async def create_warehouse(
    config: SyncConfig,
    secrets: BaseSecretProvider
) -> BaseWarehouse:
    """创建并连接目标数仓"""
    destination = config.destination
    warehouse: BaseWarehouse

    if DestinationType(destination.type) == DestinationType.SNOWFLAKE:
        assert isinstance(destination, SnowflakeDestinationConfig)
        from cosmos_cdc.targets.snowflake_warehouse import SnowflakeWarehouse

        passcode = await secrets.get_secret(destination.passcode_secret)
        warehouse = SnowflakeWarehouse(
            connection_string=destination.connection_string,
            passcode=passcode,
            table=destination.table,
            checkpoint_table=destination.checkpoint_table,
            login_timeout=destination.login_timeout,
            statement_timeout=destination.statement_timeout,
        )
    elif DestinationType(destination.type) == DestinationType.SQLITE:
        assert isinstance(destination, SQLiteDestinationConfig)
        from cosmos_cdc.targets.sqlite_warehouse import SQLiteWarehouse

        warehouse = SQLiteWarehouse(
            db_path=destination.db_path,
            table=destination.table,
            checkpoint_table=destination.checkpoint_table,
            timeout=destination.timeout,
        )
    else:
        raise ValueError(f"不支持的目标类型: {destination.type}")

    await asyncio.to_thread(warehouse.connect)
    return warehouse


@asynccontextmanager
async def open_warehouse(config: SyncConfig) -> AsyncIterator[BaseWarehouse]:
    """只打开目标数仓（用于查看断点）"""
    secrets = create_secret_provider(config)
    try:
        warehouse = await create_warehouse(config, secrets)
        try:
            yield warehouse
        finally:
            await asyncio.to_thread(warehouse.disconnect)
    finally:
        await secrets.close()


@asynccontextmanager
async def open_engine(config: SyncConfig) -> AsyncIterator[SyncEngine]:
    """
    打开全部外部连接并构建同步引擎，退出时关闭连接

    示例:
        ```python
        async with open_engine(config) as engine:
            result = await engine.run_once()
        ```
    """
    secrets = create_secret_provider(config)
    try:
        warehouse = await create_warehouse(config, secrets)
        try:
            source = await create_source(config, secrets)
            try:
                yield SyncEngine(config, source, warehouse)
            finally:
                await source.close()
        finally:
            await asyncio.to_thread(warehouse.disconnect)
    finally:
        await secrets.close()
