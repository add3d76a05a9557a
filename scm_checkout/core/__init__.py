"""核心层：配置、数据模型、异常与协议"""
