"""服务层"""
