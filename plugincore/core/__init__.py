"""
# 核心
插件描述符、版本、依赖排序、延迟加载、驱逐、观察者与生命周期协调
"""
