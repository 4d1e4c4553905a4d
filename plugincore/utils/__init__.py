"""
# 工具
包含常量、类型别名、辅助函数与日志配置
"""
