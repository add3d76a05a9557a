"""scm-checkout - CI 流水线中的代码仓检出工具"""

__version__ = "0.1.0"
