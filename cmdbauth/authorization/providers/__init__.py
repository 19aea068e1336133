"""Policy engine implementations for cmdbauth.

Available engines:
- memory: static grant table and in-process resource registry, for development and tests
"""
