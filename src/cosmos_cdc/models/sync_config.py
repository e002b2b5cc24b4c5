"""
同步配置模型 - 使用 Pydantic 进行配置验证
"""

import os
import re
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# 表名/列名只允许标识符字符，SQL 中需要直接拼接
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$.]*$")


def _validate_identifier(v: str) -> str:
    if not _IDENTIFIER.match(v):
        raise ValueError(f"非法的表名: {v}")
    return v


class DestinationType(str, Enum):
    """目标数仓类型"""
    SNOWFLAKE = "snowflake"
    SQLITE = "sqlite"


class SecretsType(str, Enum):
    """密钥提供者类型"""
    KEYVAULT = "keyvault"
    ENV = "env"


class KeyVaultSecretsConfig(BaseModel):
    """Azure Key Vault 密钥配置"""
    model_config = ConfigDict(title="Key Vault Secrets")

    type: Literal["keyvault"] = Field(default="keyvault", description="提供者类型")
    vault_url: str = Field(..., description="Key Vault 地址")
    timeout: float = Field(default=30.0, gt=0, description="单次获取超时（秒）")

    @field_validator("vault_url")
    @classmethod
    def validate_vault_url(cls, v: str) -> str:
        """验证 Key Vault 地址"""
        if not v.startswith("https://"):
            raise ValueError("vault_url 必须以 https:// 开头")
        return v


class EnvSecretsConfig(BaseModel):
    """
    环境变量密钥配置

    密钥名转换为环境变量名：前缀 + 大写，非字母数字替换为下划线。
    例如 prefix="CDC_SECRET_" 时 cosmosKey -> CDC_SECRET_COSMOSKEY
    """
    model_config = ConfigDict(title="Environment Secrets")

    type: Literal["env"] = Field(default="env", description="提供者类型")
    prefix: str = Field(default="", description="环境变量前缀")


class CosmosSourceConfig(BaseModel):
    """
    Cosmos DB 源配置

    属性:
        database: 数据库名
        container: 容器名（即源集合）
        url_secret: 保存账户地址的密钥名
        key_secret: 保存账户密钥的密钥名
        timeout: 单次查询超时（秒）
    """
    database: str = Field(..., min_length=1, description="数据库名")
    container: str = Field(..., min_length=1, description="容器名")
    url_secret: str = Field(default="cosmosURL", description="账户地址密钥名")
    key_secret: str = Field(default="cosmosKey", description="账户密钥密钥名")
    timeout: float = Field(default=30.0, gt=0, description="查询超时（秒）")


class SnowflakeDestinationConfig(BaseModel):
    """
    Snowflake 目标配置

    connection_string 形如
    "account=xy12345;user=SYNC;password={passcode};db=ANALYTICS;schema=PUBLIC;warehouse=WH"，
    其中 {passcode} 在连接时被 passcode_secret 的值替换。
    """
    model_config = ConfigDict(title="Snowflake Destination")

    type: Literal["snowflake"] = Field(default="snowflake", description="目标类型")
    connection_string: str = Field(..., description="连接串（含 {passcode} 占位符）")
    passcode_secret: str = Field(default="snowflakeKey", description="口令密钥名")
    table: str = Field(default="ORGANIZATION", description="目标表")
    checkpoint_table: str = Field(default="UPDATETIME", description="断点表")
    login_timeout: int = Field(default=60, ge=1, description="登录超时（秒）")
    statement_timeout: int = Field(default=300, ge=1, description="单条语句超时（秒）")

    @field_validator("connection_string")
    @classmethod
    def validate_placeholder(cls, v: str) -> str:
        """验证连接串包含口令占位符"""
        if "{passcode}" not in v:
            raise ValueError("connection_string 必须包含 {passcode} 占位符")
        return v

    @field_validator("table", "checkpoint_table")
    @classmethod
    def validate_table_names(cls, v: str) -> str:
        """验证表名"""
        return _validate_identifier(v)


class SQLiteDestinationConfig(BaseModel):
    """SQLite 目标配置（本地开发与测试用）"""
    model_config = ConfigDict(title="SQLite Destination")

    type: Literal["sqlite"] = Field(default="sqlite", description="目标类型")
    db_path: str = Field(..., description="数据库文件路径")
    table: str = Field(default="ORGANIZATION", description="目标表")
    checkpoint_table: str = Field(default="UPDATETIME", description="断点表")
    timeout: float = Field(default=30.0, gt=0, description="锁等待超时（秒）")

    @field_validator("table", "checkpoint_table")
    @classmethod
    def validate_table_names(cls, v: str) -> str:
        """验证表名"""
        return _validate_identifier(v)


class SyncConfig(BaseModel):
    """
    同步配置根对象

    属性:
        entity: 同步实体名，同时作为断点表主键
        batch_size: 每次拉取的最大记录数，默认 1000
        log_level: 日志级别，默认 INFO
        secrets: 密钥提供者配置
        source: 源 Cosmos DB 配置
        destination: 目标数仓配置
    """
    entity: str = Field(default="Organization", min_length=1, description="同步实体名")
    batch_size: int = Field(default=1000, ge=1, le=10000, description="批量大小")
    log_level: str = Field(default="INFO", description="日志级别")
    secrets: Union[KeyVaultSecretsConfig, EnvSecretsConfig] = Field(
        default_factory=EnvSecretsConfig, discriminator="type", description="密钥提供者"
    )
    source: CosmosSourceConfig = Field(..., description="源配置")
    destination: Union[SnowflakeDestinationConfig, SQLiteDestinationConfig] = Field(
        ..., discriminator="type", description="目标配置"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if v.upper() not in valid_levels:
            raise ValueError(f"日志级别必须是以下之一: {valid_levels}")
        return v.upper()


def expand_env_vars(value: Any) -> Any:
    """
    递归展开值中的环境变量

    支持格式:
        - ${VAR_NAME}
        - ${VAR_NAME:-default_value}
    """
    if isinstance(value, str):
        # 匹配 ${VAR} 或 ${VAR:-default}
        pattern = r'\$\{([^}:-]+)(?::-([^}]*))?\}'

        def replacer(match: "re.Match[str]") -> str:
            var_name = match.group(1)
            default_val = match.group(2)
            env_value = os.getenv(var_name)
            if env_value is None:
                if default_val is not None:
                    return default_val
                raise ValueError(f"环境变量 {var_name} 未设置且无默认值")
            return env_value

        result: Any = re.sub(pattern, replacer, value)
        return result
    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value
