"""
pms/security/context.py

操作人上下文 - 由认证边界构建，显式传入每个需要它的调用链（审计、校验信息）
"""
from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class ActorContext:
    """
    操作人上下文

    Attributes:
        username: 用户名（写入审计记录）
        roles: 角色列表（如 'admin', 'manager', 'front_desk'）
    """

    username: str
    roles: Tuple[str, ...] = field(default_factory=tuple)


# 系统操作（脚本、后台任务）使用的操作人
SYSTEM_ACTOR = ActorContext(username="SYSTEM", roles=("system",))
