"""配置模块

提供配置管理功能：
- AppSettings: 聚合配置，支持 YAML + 环境变量
- 子配置类: DatabaseSettings, LoggingSettings, TreeSettings
- ConfigLoader: YAML 配置加载器
- configure_tree / get_tree_settings: 服务层使用的树配置

快速开始:
    from ytree.config import AppSettings, load_yaml_config, configure_tree

    settings = load_yaml_config("config/settings.yaml", AppSettings)
    configure_tree(settings.tree)
"""

from .settings import (
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
    TreeSettings,
    configure_tree,
    get_tree_settings,
)

from .loader import (
    ConfigLoader,
    load_yaml_config,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "TreeSettings",
    "configure_tree",
    "get_tree_settings",
    "ConfigLoader",
    "load_yaml_config",
]
