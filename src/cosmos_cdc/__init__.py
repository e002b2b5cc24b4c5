"""
Cosmos CDC 同步引擎

将 Azure Cosmos DB 容器中新变更的文档增量同步到 Snowflake 数仓表，
基于持久化断点实现可重复调度、断点续传和幂等合并。
"""

from typing import Any

__version__ = "0.1.0"

# 延迟导入，避免加载未使用的驱动
__all__ = [
    "SyncEngine",
    "SyncConfig",
    "ChangeRecord",
    "DestinationRow",
    "load_config",
    "open_engine",
]


def __getattr__(name: str) -> Any:
    """延迟加载核心类"""
    if name == "SyncEngine":
        from cosmos_cdc.core.engine import SyncEngine
        return SyncEngine
    elif name == "SyncConfig":
        from cosmos_cdc.models.sync_config import SyncConfig
        return SyncConfig
    elif name == "ChangeRecord":
        from cosmos_cdc.models.record import ChangeRecord
        return ChangeRecord
    elif name == "DestinationRow":
        from cosmos_cdc.models.record import DestinationRow
        return DestinationRow
    elif name == "load_config":
        from cosmos_cdc.config import load_config
        return load_config
    elif name == "open_engine":
        from cosmos_cdc.core.factory import open_engine
        return open_engine
    raise AttributeError(f"module 'cosmos_cdc' has no attribute '{name}'")
