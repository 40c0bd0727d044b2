"""
RoomService / GuestService 测试
"""
import json
import pytest
from datetime import date
from decimal import Decimal

from pms.errors import DuplicateEntityError, InUseError, InvalidTransitionError, NotFoundError
from pms.models.ontology import AuditAction, AuditLog, RoomStatus
from pms.models.schemas import (
    GuestCreate, GuestUpdate, ReservationCreate, RoomCreate, RoomTypeCreate, RoomTypeUpdate, RoomUpdate
)
from pms.services.guest_service import GuestService
from pms.services.room_service import RoomService


@pytest.fixture
def room_service(db_session, audit_service):
    return RoomService(db_session, audit=audit_service)


@pytest.fixture
def guest_service(db_session, audit_service):
    return GuestService(db_session, audit=audit_service)


def _book(reservation_service, actor, guest, room, plan):
    return reservation_service.create_reservation(ReservationCreate(
        guest_id=guest.id,
        room_id=room.id,
        rate_plan_id=plan.id,
        check_in_date=date(2024, 3, 1),
        check_out_date=date(2024, 3, 2),
    ), actor)


def _update_log(db, entity_type):
    return db.query(AuditLog).filter(
        AuditLog.entity_type == entity_type, AuditLog.action == AuditAction.UPDATE
    ).one()


class TestRoomTypes:

    def test_create_room_type(self, room_service, actor):
        room_type = room_service.create_room_type(
            RoomTypeCreate(name="大床房", base_price=Decimal("328.00")), actor
        )
        assert room_type.max_occupancy == 2
        assert room_service.get_room_type_by_name("大床房").id == room_type.id

    def test_duplicate_room_type(self, room_service, actor, sample_room_type):
        with pytest.raises(DuplicateEntityError):
            room_service.create_room_type(RoomTypeCreate(name="标准间", base_price=Decimal("1")), actor)


    def test_update_room_type(self, room_service, actor, db_session, sample_room_type):
        updated = room_service.update_room_type(
            sample_room_type.id, RoomTypeUpdate(base_price=Decimal("298.00")), actor
        )

        assert updated.base_price == Decimal("298.00")
        assert updated.name == "标准间"
        changes = json.loads(_update_log(db_session, "RoomType").changes)
        assert changes == {"base_price": {"old": "288.00", "new": "298.00"}}

    def test_rename_to_existing_room_type(self, room_service, actor, sample_room_type, sample_room_type_suite):
        with pytest.raises(DuplicateEntityError) as exc:
            room_service.update_room_type(sample_room_type_suite.id, RoomTypeUpdate(name="标准间"), actor)
        assert exc.value.field == "name"

    def test_update_missing_room_type(self, room_service, actor):
        with pytest.raises(NotFoundError):
            room_service.update_room_type(999, RoomTypeUpdate(name="X"), actor)

    def test_delete_room_type(self, room_service, actor, db_session, sample_room_type_suite):
        assert room_service.delete_room_type(sample_room_type_suite.id, actor) is True

        assert room_service.get_room_type(sample_room_type_suite.id) is None
        log = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.DELETE).one()
        assert (log.entity_type, log.entity_id) == ("RoomType", sample_room_type_suite.id)

    def test_delete_room_type_with_rooms(self, room_service, actor, sample_room):
        with pytest.raises(InUseError) as exc:
            room_service.delete_room_type(sample_room.room_type_id, actor)
        assert exc.value.referrer_type == "Room"
        assert exc.value.referrer_count == 1

    def test_delete_priced_room_type(self, room_service, actor, sample_room_type, sample_rate_plan):
        with pytest.raises(InUseError) as exc:
            room_service.delete_room_type(sample_room_type.id, actor)
        assert exc.value.referrer_type == "RatePlanRate"
        assert room_service.get_room_type(sample_room_type.id) is not None


class TestRooms:

    def test_create_room_inherits_capacity(self, room_service, actor, sample_room_type_suite):
        room = room_service.create_room(
            RoomCreate(room_number="302", floor=3, room_type_id=sample_room_type_suite.id), actor
        )
        assert room.max_occupancy == 4
        assert room.status == RoomStatus.AVAILABLE

    def test_duplicate_room_number(self, room_service, actor, sample_room):
        with pytest.raises(DuplicateEntityError) as exc:
            room_service.create_room(
                RoomCreate(room_number="101", room_type_id=sample_room.room_type_id), actor
            )
        assert exc.value.field == "room_number"

    def test_unknown_room_type(self, room_service, actor):
        with pytest.raises(NotFoundError):
            room_service.create_room(RoomCreate(room_number="999", room_type_id=999), actor)

    def test_rooms_ordered_by_number(self, room_service, sample_room_102, sample_room, sample_suite_room):
        assert [r.room_number for r in room_service.get_rooms()] == ["101", "102", "301"]
        assert [r.room_number for r in room_service.get_rooms(room_type_id=sample_suite_room.room_type_id)] == ["301"]

    def test_manual_status_change(self, room_service, actor, db_session, sample_room):
        room = room_service.update_room_status(sample_room.id, RoomStatus.MAINTENANCE, actor)
        assert room.status == RoomStatus.MAINTENANCE
        assert db_session.query(AuditLog).filter(AuditLog.entity_type == "Room").count() == 1

    def test_held_room_status_is_locked(self, room_service, reservation_service, actor,
                                        sample_guest, sample_room, sample_rate_plan):
        _book(reservation_service, actor, sample_guest, sample_room, sample_rate_plan)

        with pytest.raises(InvalidTransitionError) as exc:
            room_service.update_room_status(sample_room.id, RoomStatus.AVAILABLE, actor)
        assert exc.value.from_state == RoomStatus.RESERVED

    def test_missing_room(self, room_service, actor):
        with pytest.raises(NotFoundError):
            room_service.update_room_status(999, RoomStatus.CLEANING, actor)


    def test_update_room(self, room_service, actor, db_session, sample_room, sample_room_type_suite):
        updated = room_service.update_room(sample_room.id, RoomUpdate(
            room_type_id=sample_room_type_suite.id, price_per_night=Decimal("600.00")
        ), actor)

        assert updated.room_type_id == sample_room_type_suite.id
        assert updated.status == RoomStatus.AVAILABLE
        changes = json.loads(_update_log(db_session, "Room").changes)
        assert changes["room_type_id"]["new"] == {"id": sample_room_type_suite.id, "label": "套房"}
        assert changes["price_per_night"] == {"old": "110.00", "new": "600.00"}

    def test_update_room_number_taken(self, room_service, actor, sample_room, sample_room_102):
        with pytest.raises(DuplicateEntityError):
            room_service.update_room(sample_room_102.id, RoomUpdate(room_number="101"), actor)

    def test_update_room_unknown_type(self, room_service, actor, sample_room):
        with pytest.raises(NotFoundError) as exc:
            room_service.update_room(sample_room.id, RoomUpdate(room_type_id=999), actor)
        assert exc.value.entity_type == "RoomType"

    def test_get_room_by_number(self, room_service, sample_room):
        assert room_service.get_room_by_number("101").id == sample_room.id
        assert room_service.get_room_by_number("999") is None

    def test_delete_room(self, room_service, actor, db_session, sample_room_102):
        assert room_service.delete_room(sample_room_102.id, actor) is True

        assert room_service.get_room(sample_room_102.id) is None
        log = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.DELETE).one()
        assert (log.entity_type, log.entity_id) == ("Room", sample_room_102.id)

    def test_delete_booked_room(self, room_service, reservation_service, actor,
                                sample_guest, sample_room, sample_rate_plan):
        reservation = _book(reservation_service, actor, sample_guest, sample_room, sample_rate_plan)
        reservation_service.cancel_reservation(reservation.id, actor)

        with pytest.raises(InUseError) as exc:
            room_service.delete_room(sample_room.id, actor)
        assert exc.value.referrer_type == "Reservation"
        assert room_service.get_room(sample_room.id) is not None


class TestGuests:

    def test_create_guest(self, guest_service, actor, db_session):
        guest = guest_service.create_guest(
            GuestCreate(first_name="Wu", last_name="Wang", email="wangwu@example.com"), actor
        )
        assert guest.full_name == "Wu Wang"
        assert guest_service.get_guest(guest.id).email == "wangwu@example.com"
        log = db_session.query(AuditLog).filter(AuditLog.entity_type == "Guest").one()
        assert log.entity_id == guest.id

    def test_duplicate_email(self, guest_service, actor, sample_guest):
        with pytest.raises(DuplicateEntityError):
            guest_service.create_guest(
                GuestCreate(first_name="A", last_name="B", email="zhangsan@example.com"), actor
            )

    def test_guest_without_email(self, guest_service, actor):
        first = guest_service.create_guest(GuestCreate(first_name="A", last_name="B"), actor)
        second = guest_service.create_guest(GuestCreate(first_name="C", last_name="D"), actor)
        assert first.id != second.id

    def test_search_guests(self, guest_service, sample_guest, sample_guest_2):
        assert [g.last_name for g in guest_service.get_guests()] == ["Li", "Zhang"]
        assert [g.id for g in guest_service.get_guests(search="Zhang")] == [sample_guest.id]
        assert [g.id for g in guest_service.get_guests(search="lisi@")] == [sample_guest_2.id]
        assert [g.id for g in guest_service.get_guests(search="139001")] == [sample_guest_2.id]
        assert len(guest_service.get_guests(limit=1)) == 1

    def test_get_guest_by_email(self, guest_service, sample_guest):
        assert guest_service.get_guest_by_email("zhangsan@example.com").id == sample_guest.id
        assert guest_service.get_guest_by_email("nobody@example.com") is None

    def test_update_guest(self, guest_service, actor, db_session, sample_guest):
        updated = guest_service.update_guest(sample_guest.id, GuestUpdate(phone="13700137000"), actor)

        assert updated.phone == "13700137000"
        assert updated.email == "zhangsan@example.com"
        changes = json.loads(_update_log(db_session, "Guest").changes)
        assert changes == {"phone": {"old": "13800138000", "new": "13700137000"}}

    def test_update_guest_keeps_own_email(self, guest_service, actor, sample_guest):
        updated = guest_service.update_guest(
            sample_guest.id, GuestUpdate(email="zhangsan@example.com", first_name="Sam"), actor
        )
        assert updated.first_name == "Sam"

    def test_update_guest_email_taken(self, guest_service, actor, sample_guest, sample_guest_2):
        with pytest.raises(DuplicateEntityError) as exc:
            guest_service.update_guest(sample_guest_2.id, GuestUpdate(email="zhangsan@example.com"), actor)
        assert exc.value.field == "email"

    def test_update_missing_guest(self, guest_service, actor):
        with pytest.raises(NotFoundError):
            guest_service.update_guest(999, GuestUpdate(phone="1"), actor)

    def test_delete_guest(self, guest_service, actor, db_session, sample_guest_2):
        assert guest_service.delete_guest(sample_guest_2.id, actor) is True

        assert guest_service.get_guest(sample_guest_2.id) is None
        log = db_session.query(AuditLog).filter(AuditLog.action == AuditAction.DELETE).one()
        assert (log.entity_type, log.entity_id) == ("Guest", sample_guest_2.id)

    def test_delete_guest_with_reservation(self, guest_service, reservation_service, actor,
                                           sample_guest, sample_room, sample_rate_plan):
        _book(reservation_service, actor, sample_guest, sample_room, sample_rate_plan)

        with pytest.raises(InUseError) as exc:
            guest_service.delete_guest(sample_guest.id, actor)
        assert exc.value.referrer_count == 1
        assert guest_service.get_guest(sample_guest.id) is not None
