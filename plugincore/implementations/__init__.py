"""
# 默认实现
插件查找器、加载器、应用模型、注入容器与文件监视
"""
