"""
jarvis-knowledge 异常定义
"""


class KnowledgeError(Exception):
    """知识管理基础异常"""
    pass


class StoreError(KnowledgeError):
    """存储层错误（不可达、查询失败、约束冲突）"""
    pass


class StoreConnectionError(StoreError):
    """连接错误"""
    pass


class ValidationError(StoreError):
    """写入校验错误（缺少必填字段等）"""
    pass


class ImportFormatError(ValidationError):
    """批量导入数据格式错误"""
    pass


class ConfigError(KnowledgeError):
    """配置错误"""
    pass
