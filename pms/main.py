"""
PMS 预订核心 主应用入口
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pms import __version__
from pms.config import settings
from pms.database import init_db
from pms.routers import reservations, invoices, rate_plans, rooms, guests, audit_logs

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时初始化数据库
    init_db()
    logger.info(f"{settings.APP_NAME} started (database: {settings.DATABASE_URL})")

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店预订核心：房态、价格方案、预订生命周期、账单与审计",
    version=__version__,
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(guests.router)
app.include_router(rooms.router)
app.include_router(rate_plans.router)
app.include_router(reservations.router)
app.include_router(invoices.router)
app.include_router(audit_logs.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": __version__,
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
