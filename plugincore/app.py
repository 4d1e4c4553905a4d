"""应用程序模块

提供插件系统的顶层接口，按固定顺序驱动插件管理器完成启动
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .abc.application import ApplicationMetadata
from .implementations.application import DefaultApplication
from .implementations.context import DefaultApplicationContext, DefaultRuntimeConfiguration
from .managers.config_manager import ConfigManager
from .managers.plugin_manager import DefaultPluginManager
from .utils.constants import CONFIG_FILE_NAME, DEFAULT_ENVIRONMENT

logger = logging.getLogger("PluginApplication")


class PluginApplication:
    """插件应用程序

    提供插件系统的顶层接口，简化系统初始化和使用

    Attributes:
        plugin_dirs: 插件目录列表
        config_file: 应用配置文件
        environment: 运行环境
        active_profiles: 激活的 profile
        application: 宿主应用
        plugin_manager: 插件管理器实例
        application_context: 启动后创建的应用上下文
        _running: 运行状态
    """

    def __init__(
        self,
        plugin_dirs: Iterable[Union[Path, str]] = (),
        config_file: Optional[Union[Path, str]] = CONFIG_FILE_NAME,
        environment: str = DEFAULT_ENVIRONMENT,
        active_profiles: Iterable[str] = (),
        plugin_classes: Iterable[type] = (),
        core_plugin_classes: Iterable[type] = (),
        metadata: Optional[ApplicationMetadata] = None,
        source_roots: Iterable[Union[Path, str]] = (),
        dev_mode: bool = False,
        **manager_options,
    ):
        """初始化插件应用程序

        Args:
            plugin_dirs: 插件目录列表
            config_file: 应用配置文件，不存在时以空配置启动
            environment: 运行环境
            active_profiles: 激活的 profile
            plugin_classes: 直接提供的用户插件类
            core_plugin_classes: 核心插件类
            metadata: 应用元数据
            source_roots: 源码根目录
            dev_mode: 开发模式，启动后监视文件变更
            manager_options: 传给 DefaultPluginManager 的其他参数
        """
        self.plugin_dirs: List[Path] = [Path(d).expanduser().resolve() for d in plugin_dirs]
        self.config_file = Path(config_file) if config_file else None
        self.environment = environment
        self.active_profiles = frozenset(active_profiles)
        self.dev_mode = dev_mode
        self.config_manager = ConfigManager()

        self.application = DefaultApplication(metadata, None, source_roots, self.config_file)
        self.plugin_manager = DefaultPluginManager(
            self.application,
            self.plugin_dirs,
            plugin_classes,
            core_plugin_classes,
            environment=environment,
            config_manager=self.config_manager,
            **manager_options,
        )
        self.application_context: Optional[DefaultApplicationContext] = None
        self._running = False

    async def _load_config(self) -> None:
        if self.config_file is None or not self.config_file.exists():
            logger.debug(f"配置文件 {self.config_file} 不存在，使用空配置")
            return
        metadata = self.application.metadata
        config = await self.config_manager.parse(
            self.config_file,
            self.environment,
            {
                "userHome": str(Path.home()),
                "appName": metadata.name,
                "appVersion": metadata.version,
                "environment": self.environment,
            },
        )
        self.application.config.merge(config)

    async def start(self) -> None:
        """启动插件应用程序

        Raises:
            Exception: 当启动过程中发生错误时
        """
        if self._running:
            return

        logger.info("正在启动插件应用程序...")
        manager = self.plugin_manager
        try:
            await self._load_config()
            await manager.load_plugins()

            await manager.do_artefact_configuration()
            await manager.register_provided_artefacts()

            runtime_config = DefaultRuntimeConfiguration()
            await manager.do_runtime_configuration(runtime_config)

            context = DefaultApplicationContext(self.active_profiles)
            runtime_config.register_beans_with_context(context)
            context.refresh()
            self.application_context = context

            manager.set_application_context(context)
            await manager.do_dynamic_methods()
            await manager.do_post_processing(context)
            await manager.on_startup({"source": manager})

            if self.dev_mode:
                manager.start_watching()
            self._running = True
            logger.info("插件应用程序已启动")
        except Exception as e:
            logger.error(f"启动插件应用程序失败:\n{e}")
            raise

    async def stop(self) -> None:
        """停止插件应用程序"""
        if not self._running:
            return

        logger.info("正在停止插件应用程序...")
        await self.plugin_manager.shutdown()
        if self.application_context is not None:
            self.application_context.close()
        self._running = False
        logger.info("插件应用程序已停止")

    def is_running(self) -> bool:
        """检查应用程序是否正在运行"""
        return self._running

    def get_plugin_manager(self) -> DefaultPluginManager:
        return self.plugin_manager

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
