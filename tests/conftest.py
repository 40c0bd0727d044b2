"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from pms.database import Base, get_db
from pms.engine.clock import FixedClock
from pms.models import ontology  # noqa
from pms.models.ontology import Guest, RatePlan, RatePlanRate, Room, RoomStatus, RoomType
from pms.security.auth import create_access_token
from pms.security.context import ActorContext
from pms.services.audit_service import AuditService
from pms.services.invoice_service import InvoiceService
from pms.services.operations import BookingOperations
from pms.services.rate_plan_service import RatePlanService
from pms.services.reservation_service import ReservationService
from pms.routers.common import get_audit_service, get_clock
from pms.main import app


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """测试会话工厂（审计写入使用独立会话）"""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    """固定时钟：2024-02-20 09:00"""
    return FixedClock(datetime(2024, 2, 20, 9, 0))


@pytest.fixture
def audit_service(db_session, session_factory, clock):
    return AuditService(db_session, session_factory=session_factory, clock=clock, enabled=True)


@pytest.fixture
def actor():
    """前台操作人"""
    return ActorContext(username="front1", roles=("front_desk",))


@pytest.fixture
def admin_actor():
    return ActorContext(username="admin", roles=("admin",))


# ============== 服务 Fixtures ==============

@pytest.fixture
def rate_plan_service(db_session, audit_service):
    return RatePlanService(db_session, audit=audit_service)


@pytest.fixture
def reservation_service(db_session, audit_service, clock):
    return ReservationService(db_session, audit=audit_service, clock=clock)


@pytest.fixture
def invoice_service(db_session, audit_service, clock):
    return InvoiceService(db_session, audit=audit_service, clock=clock)


@pytest.fixture
def operations(db_session, audit_service, clock):
    return BookingOperations(db_session, audit=audit_service, clock=clock)


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_room_type(db_session):
    """创建测试房型"""
    room_type = RoomType(
        name="标准间",
        description="Standard Room",
        base_price=Decimal("288.00"),
        max_occupancy=2
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def sample_room_type_suite(db_session):
    """创建套房房型"""
    room_type = RoomType(
        name="套房",
        description="Suite",
        base_price=Decimal("588.00"),
        max_occupancy=4
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def sample_room(db_session, sample_room_type):
    """创建测试房间 101（夜价 110.00，最多 2 人）"""
    room = Room(
        room_number="101",
        floor=1,
        room_type_id=sample_room_type.id,
        status=RoomStatus.AVAILABLE,
        max_occupancy=2,
        price_per_night=Decimal("110.00")
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room_102(db_session, sample_room_type):
    """创建102房间（未设夜价，账单取房型基础价）"""
    room = Room(
        room_number="102",
        floor=1,
        room_type_id=sample_room_type.id,
        status=RoomStatus.AVAILABLE,
        max_occupancy=2
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_suite_room(db_session, sample_room_type_suite):
    """创建套房 301"""
    room = Room(
        room_number="301",
        floor=3,
        room_type_id=sample_room_type_suite.id,
        status=RoomStatus.AVAILABLE,
        max_occupancy=4,
        price_per_night=Decimal("600.00")
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_guest(db_session):
    """创建测试客人"""
    guest = Guest(first_name="San", last_name="Zhang", email="zhangsan@example.com", phone="13800138000")
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def sample_guest_2(db_session):
    """创建第二个测试客人"""
    guest = Guest(first_name="Si", last_name="Li", email="lisi@example.com", phone="13900139000")
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def sample_rate_plan(db_session, sample_room_type):
    """创建价格方案 Standard：标准间 100.00"""
    plan = RatePlan(name="Standard", description="Standard rate")
    db_session.add(plan)
    db_session.commit()
    db_session.add(RatePlanRate(
        rate_plan_id=plan.id,
        room_type_id=sample_room_type.id,
        rate=Decimal("100.00")
    ))
    db_session.commit()
    db_session.refresh(plan)
    return plan


# ============== API Fixtures ==============

@pytest.fixture(scope="function")
def client(db_session, audit_service, clock):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_audit_service] = lambda: audit_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def front_desk_token():
    return create_access_token("front1", ["front_desk"])


@pytest.fixture
def admin_token():
    return create_access_token("admin", ["admin"])


@pytest.fixture
def auth_headers(front_desk_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {front_desk_token}"}


@pytest.fixture
def admin_auth_headers(admin_token):
    """返回管理员认证的请求头"""
    return {"Authorization": f"Bearer {admin_token}"}
