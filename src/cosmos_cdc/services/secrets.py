"""
密钥服务 - 从 Azure Key Vault 或环境变量获取连接凭据
"""

import asyncio
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

from azure.core.exceptions import AzureError
from azure.identity.aio import DefaultAzureCredential
from azure.keyvault.secrets.aio import SecretClient

from cosmos_cdc.errors import SecretUnavailable
from cosmos_cdc.utils.logging import get_logger

logger = get_logger(__name__)


class BaseSecretProvider(ABC):
    """
    密钥提供者抽象基类

    get_secret 结果在进程生命周期内缓存。
    """

    def __init__(self) -> None:
        self._cache: Dict[str, str] = {}

    async def get_secret(self, name: str) -> str:
        """
        获取密钥值

        参数:
            name: 密钥名

        返回:
            密钥值

        异常:
            SecretUnavailable: 密钥不存在、为空或获取失败/超时
        """
        if name in self._cache:
            return self._cache[name]

        value = await self._fetch(name)
        if not value:
            raise SecretUnavailable(f"密钥为空: {name}", phase="secrets")

        self._cache[name] = value
        logger.debug("secret_retrieved", secret=name)
        return value

    @abstractmethod
    async def _fetch(self, name: str) -> str:
        """从后端读取密钥"""
        raise NotImplementedError

    async def close(self) -> None:
        """释放底层客户端"""


class KeyVaultSecretProvider(BaseSecretProvider):
    """
    Azure Key Vault 密钥提供者

    使用 DefaultAzureCredential（托管标识、环境变量、CLI 登录等）认证。
    """

    def __init__(self, vault_url: str, timeout: float = 30.0):
        super().__init__()
        self.vault_url = vault_url
        self.timeout = timeout
        self._credential: Optional[DefaultAzureCredential] = None
        self._client: Optional[SecretClient] = None

    def _get_client(self) -> SecretClient:
        if self._client is None:
            self._credential = DefaultAzureCredential()
            self._client = SecretClient(vault_url=self.vault_url, credential=self._credential)
        return self._client

    async def _fetch(self, name: str) -> str:
        client = self._get_client()
        try:
            secret = await asyncio.wait_for(client.get_secret(name), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("secret_fetch_timeout", secret=name, timeout=self.timeout)
            raise SecretUnavailable(
                f"获取密钥超时: {name}", phase="secrets", cause=e
            ) from e
        except AzureError as e:
            logger.error("secret_fetch_failed", secret=name, error=str(e))
            raise SecretUnavailable(
                f"获取密钥失败: {name}", phase="secrets", cause=e
            ) from e
        return secret.value or ""

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
        if self._credential is not None:
            await self._credential.close()
            self._credential = None


class EnvSecretProvider(BaseSecretProvider):
    """
    环境变量密钥提供者

    本地运行时使用，cosmosKey -> {prefix}COSMOSKEY
    """

    def __init__(self, prefix: str = ""):
        super().__init__()
        self.prefix = prefix

    def env_name(self, name: str) -> str:
        """密钥名对应的环境变量名"""
        return self.prefix + re.sub(r"[^A-Za-z0-9]", "_", name).upper()

    async def _fetch(self, name: str) -> str:
        env_name = self.env_name(name)
        value = os.getenv(env_name)
        if value is None:
            raise SecretUnavailable(
                f"环境变量 {env_name} 未设置（密钥 {name}）", phase="secrets"
            )
        return value
