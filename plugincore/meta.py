__author__ = "plugincore developers"
__status__ = "dev"
__version__ = "1.0.0"

# 宿主框架版本，插件的框架版本范围以此为准
FRAMEWORK_VERSION = __version__
