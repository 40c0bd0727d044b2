"""
数据库配置 - 持久化层
业务实体扁平存储，实体之间只通过 id 关联
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from pms.config import settings

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """依赖注入：获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """初始化数据库表"""
    from pms.models import ontology  # noqa
    Base.metadata.create_all(bind=engine)
