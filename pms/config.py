"""
应用配置
从环境变量 / .env 读取配置
"""
from decimal import Decimal
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "PMS Booking Core"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./pms.db"

    # JWT 配置（令牌由认证中间件签发，这里只做校验）
    SECRET_KEY: str = "pms-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 账单配置
    TAX_RATE: Decimal = Decimal("0.10")

    # 审计开关
    AUDIT_ENABLED: bool = True

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
