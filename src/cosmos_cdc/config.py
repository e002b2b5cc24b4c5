"""
配置加载模块 - 支持 YAML 和环境变量
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from cosmos_cdc.models.sync_config import SyncConfig, expand_env_vars


class ConfigError(Exception):
    """配置错误"""
    pass


def load_config(path: str | Path) -> SyncConfig:
    """
    加载 YAML 配置文件

    支持环境变量替换，格式:
        - ${VAR_NAME}
        - ${VAR_NAME:-default_value}

    参数:
        path: 配置文件路径

    返回:
        SyncConfig: 验证后的配置对象

    异常:
        ConfigError: 配置文件不存在、格式错误或验证失败

    示例:
        ```python
        config = load_config("sync.yaml")
        print(config.source.container)
        ```
    """
    config_path = Path(path)

    if not config_path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"读取配置文件失败: {e}") from e

    return load_config_from_string(content)


def load_config_from_string(content: str) -> SyncConfig:
    """
    从字符串加载配置

    参数:
        content: YAML 配置字符串

    返回:
        SyncConfig: 验证后的配置对象
    """
    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML 解析失败: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("配置文件必须是一个对象")

    try:
        expanded_config = expand_env_vars(raw_config)
        return SyncConfig(**expanded_config)
    except (ValidationError, ValueError) as e:
        raise ConfigError(f"配置验证失败: {e}") from e


def generate_config_template() -> str:
    """
    生成配置模板

    返回:
        str: YAML 配置模板
    """
    return '''# Cosmos DB -> Snowflake 增量同步配置

# 同步实体名（断点表 TABLENAME 列的值）
entity: "Organization"
batch_size: 1000              # 每次运行最多拉取的记录数
log_level: "INFO"             # 日志级别 (DEBUG, INFO, WARNING, ERROR)

# 密钥提供者
secrets:
  type: "keyvault"
  vault_url: "${KEY_VAULT_URL}"
  # 本地运行可改为环境变量:
  # type: "env"
  # prefix: "CDC_SECRET_"     # cosmosKey -> CDC_SECRET_COSMOSKEY

# 源 Cosmos DB 容器
source:
  database: "LocationService"
  container: "Organization"
  url_secret: "cosmosURL"     # 保存账户地址的密钥名
  key_secret: "cosmosKey"     # 保存账户密钥的密钥名
  timeout: 30

# 目标数仓
destination:
  type: "snowflake"
  connection_string: "account=${SNOWFLAKE_ACCOUNT};user=${SNOWFLAKE_USER};password={passcode};db=ANALYTICS;schema=PUBLIC;warehouse=COMPUTE_WH"
  passcode_secret: "snowflakeKey"
  table: "ORGANIZATION"
  checkpoint_table: "UPDATETIME"
  login_timeout: 60
  statement_timeout: 300

  # 本地开发可改为 SQLite:
  # type: "sqlite"
  # db_path: "./warehouse.db"
'''


def save_config_template(path: str | Path) -> None:
    """
    保存配置模板到文件

    参数:
        path: 输出文件路径
    """
    config_path = Path(path)
    config_path.write_text(generate_config_template(), encoding="utf-8")
