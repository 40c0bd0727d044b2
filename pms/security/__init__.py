"""
安全边界：操作人上下文与令牌校验
"""
from pms.security.context import ActorContext, SYSTEM_ACTOR

__all__ = ["ActorContext", "SYSTEM_ACTOR"]
