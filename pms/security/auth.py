"""
认证边界
令牌由外部认证服务签发；这里只校验 JWT 并构建 ActorContext
"""
import logging
from datetime import datetime, timedelta, UTC
from typing import Iterable, List, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from pms.config import settings
from pms.security.context import ActorContext

logger = logging.getLogger(__name__)

security = HTTPBearer()


def create_access_token(username: str, roles: Optional[List[str]] = None,
                        expires_minutes: Optional[int] = None) -> str:
    """创建 JWT token（测试与运维脚本使用）"""
    expire = datetime.now(UTC) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode = {
        "sub": username,
        "roles": list(roles or []),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


def _extract_roles(payload: dict) -> List[str]:
    """从 roles（列表）或 role（单值）声明中提取角色"""
    roles = payload.get("roles")
    if isinstance(roles, str):
        return [r.strip() for r in roles.split(",") if r.strip()]
    if isinstance(roles, list):
        return [str(r) for r in roles]
    role = payload.get("role")
    return [str(role)] if role else []


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> ActorContext:
    """获取当前操作人"""
    payload = decode_token(credentials.credentials)

    username = payload.get("sub")
    if not username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="令牌缺少用户信息"
        )

    return ActorContext(username=username, roles=tuple(_extract_roles(payload)))


def require_role(allowed_roles: Iterable[str]):
    """角色权限验证"""
    allowed = set(allowed_roles)

    async def role_checker(actor: ActorContext = Depends(get_current_actor)):
        if not allowed.intersection(actor.roles):
            logger.warning(f"Access denied for {actor.username}: requires one of {sorted(allowed)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="权限不足"
            )
        return actor
    return role_checker


require_admin = require_role(["admin"])
