"""
ytree - 层级分类树 / 模板树引擎

基于 SQLAlchemy 的物化路径分类树，提供 ORM 基础设施（软删除、事务管理）、
日志、配置、异常处理以及分类树领域服务。
"""

__version__ = "0.1.0"
__description__ = "Hierarchical taxonomy and template-tree engine"
