"""
# 抽象基类
插件管理器、查找器、加载器与宿主应用协作者的接口
"""
