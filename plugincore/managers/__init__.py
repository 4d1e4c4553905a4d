"""
# 管理器
插件管理器与配置管理器
"""

from .config_manager import ConfigManager
from .plugin_manager import DefaultPluginManager

__all__ = ["ConfigManager", "DefaultPluginManager"]
