"""通用工具：日志、子进程、YAML、网络与信号"""
