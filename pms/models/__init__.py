"""
数据模型
- ontology: SQLAlchemy 实体与枚举
- schemas: Pydantic 请求/响应模式
- lifecycle: 预订状态转换表
"""
from pms.models import ontology  # noqa
