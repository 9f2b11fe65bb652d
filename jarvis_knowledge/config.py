"""
jarvis-knowledge 配置系统

提供 Portal、存储与上下文构建的完整配置。
支持从 YAML 文件加载和环境变量覆盖。
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List
import logging
import os

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

JARVIS_KNOWLEDGE_VERSION = "0.1.0"


# ==================== 子配置 ====================

@dataclass
class ServerConfig:
    """Portal 服务器配置"""
    host: str = "0.0.0.0"
    port: int = 8082
    workers: int = 1
    reload: bool = False
    log_level: str = "info"
    cors_enabled: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    # list/save 端点是否区分 4xx / 5xx（默认全部 400）
    split_error_status: bool = False


@dataclass
class StoreConfig:
    """知识存储配置"""
    type: str = "sqlite"                        # sqlite | memory
    sqlite_path: str = "jarvis_knowledge.db"


@dataclass
class ContextConfig:
    """上下文构建配置"""
    max_items: int = 8
    tag_bonus: float = 2.0


@dataclass
class ListingConfig:
    """列表端点配置"""
    default_status: str = "active"
    limit: int = 100


@dataclass
class ImportConfig:
    """批量导入默认值"""
    default_module_slug: str = "trading_psychology"
    default_importance: float = 3


# ==================== 主配置 ====================

@dataclass
class PortalConfig:
    """
    Jarvis Knowledge Portal 完整配置

    配置文件示例 (portal_config.yaml):
    ```yaml
    server:
      host: "0.0.0.0"
      port: 8082
      split_error_status: false

    store:
      type: "sqlite"
      sqlite_path: "jarvis_knowledge.db"

    context:
      max_items: 8
      tag_bonus: 2

    listing:
      default_status: "active"
      limit: 100
    ```
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    listing: ListingConfig = field(default_factory=ListingConfig)
    importing: ImportConfig = field(default_factory=ImportConfig)

    version: str = field(default_factory=lambda: JARVIS_KNOWLEDGE_VERSION)
    environment: str = "development"

    @classmethod
    def for_development(cls) -> "PortalConfig":
        """开发环境配置"""
        return cls(
            server=ServerConfig(
                host="127.0.0.1", port=8082, workers=1,
                reload=True, log_level="debug",
            ),
            store=StoreConfig(type="memory"),
            environment="development",
        )

    @classmethod
    def for_testing(cls) -> "PortalConfig":
        """测试环境配置"""
        return cls(
            server=ServerConfig(host="127.0.0.1", log_level="warning"),
            store=StoreConfig(type="memory"),
            environment="testing",
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        import dataclasses
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortalConfig":
        """从字典创建"""
        try:
            return cls(
                server=ServerConfig(**data.get("server", {})),
                store=StoreConfig(**data.get("store", {})),
                context=ContextConfig(**data.get("context", {})),
                listing=ListingConfig(**data.get("listing", {})),
                importing=ImportConfig(**data.get("importing", {})),
                version=data.get("version", JARVIS_KNOWLEDGE_VERSION),
                environment=data.get("environment", "development"),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid config section: {e}") from e


def load_config(config_path: str) -> PortalConfig:
    """
    从 YAML 文件加载配置

    Args:
        config_path: YAML 配置文件路径

    Returns:
        PortalConfig 实例

    支持环境变量覆盖:
        JARVIS_PORTAL_HOST, JARVIS_PORTAL_PORT,
        JARVIS_STORE_TYPE, JARVIS_STORE_SQLITE_PATH,
        JARVIS_CONTEXT_MAX_ITEMS, JARVIS_ENVIRONMENT
    """
    import yaml

    if not os.path.exists(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    config = PortalConfig.from_dict(data)

    # 环境变量覆盖
    if os.environ.get("JARVIS_PORTAL_HOST"):
        config.server.host = os.environ["JARVIS_PORTAL_HOST"]
    if os.environ.get("JARVIS_PORTAL_PORT"):
        config.server.port = int(os.environ["JARVIS_PORTAL_PORT"])
    if os.environ.get("JARVIS_STORE_TYPE"):
        config.store.type = os.environ["JARVIS_STORE_TYPE"]
    if os.environ.get("JARVIS_STORE_SQLITE_PATH"):
        config.store.sqlite_path = os.environ["JARVIS_STORE_SQLITE_PATH"]
    if os.environ.get("JARVIS_CONTEXT_MAX_ITEMS"):
        config.context.max_items = int(os.environ["JARVIS_CONTEXT_MAX_ITEMS"])
    if os.environ.get("JARVIS_ENVIRONMENT"):
        config.environment = os.environ["JARVIS_ENVIRONMENT"]

    logger.info(f"Config loaded from {config_path}, environment={config.environment}")
    return config
