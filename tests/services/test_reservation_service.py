"""
ReservationService 测试 - 创建校验、生命周期、房间状态联动、修改
"""
import json
import pytest
from datetime import date, datetime
from decimal import Decimal

from pms.errors import (
    ConflictError, DomainValidationError, InvalidTransitionError,
    NotFoundError, RateNotFoundError
)
from pms.models.ontology import (
    AuditAction, AuditLog, PaymentStatus, Reservation, ReservationStatus, Room, RoomStatus
)
from pms.models.schemas import ReservationCreate, ReservationUpdate


def _payload(guest, room, plan, check_in=date(2024, 3, 1), check_out=date(2024, 3, 3), guest_count=2):
    return ReservationCreate(
        guest_id=guest.id,
        room_id=room.id,
        rate_plan_id=plan.id,
        check_in_date=check_in,
        check_out_date=check_out,
        guest_count=guest_count,
    )


def _room_status(db, room_id):
    db.expire_all()
    return db.query(Room).filter(Room.id == room_id).one().status


class TestCreateReservation:

    def test_create(self, reservation_service, actor, db_session, sample_guest, sample_room, sample_rate_plan):
        reservation = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan), actor
        )

        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.payment_status == PaymentStatus.PENDING
        assert reservation.total_amount == Decimal("200.00")
        assert reservation.created_by == "front1"
        assert reservation.reservation_no.startswith("RES20240220")
        assert len(reservation.reservation_no) == len("RES20240220") + 6
        assert _room_status(db_session, sample_room.id) == RoomStatus.RESERVED

    def test_checkout_before_checkin(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        with pytest.raises(DomainValidationError) as exc:
            reservation_service.create_reservation(
                _payload(sample_guest, sample_room, sample_rate_plan,
                         check_in=date(2024, 3, 3), check_out=date(2024, 3, 3)), actor
            )
        assert exc.value.field == "check_out_date"

    def test_check_in_in_past(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        with pytest.raises(DomainValidationError) as exc:
            reservation_service.create_reservation(
                _payload(sample_guest, sample_room, sample_rate_plan,
                         check_in=date(2024, 2, 19), check_out=date(2024, 2, 21)), actor
            )
        assert exc.value.field == "check_in_date"

    def test_check_in_today_allowed(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        reservation = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan,
                     check_in=date(2024, 2, 20), check_out=date(2024, 2, 21)), actor
        )
        assert reservation.nights == 1

    @pytest.mark.parametrize("missing", ["guest", "room", "plan"])
    def test_missing_references(self, reservation_service, actor, sample_guest, sample_room,
                                sample_rate_plan, missing):
        data = _payload(sample_guest, sample_room, sample_rate_plan)
        field = {"guest": "guest_id", "room": "room_id", "plan": "rate_plan_id"}[missing]
        data = data.model_copy(update={field: 999})

        with pytest.raises(NotFoundError) as exc:
            reservation_service.create_reservation(data, actor)
        assert exc.value.identifier == 999

    def test_over_capacity(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        with pytest.raises(DomainValidationError) as exc:
            reservation_service.create_reservation(
                _payload(sample_guest, sample_room, sample_rate_plan, guest_count=3), actor
            )
        assert exc.value.field == "guest_count"

    def test_rate_not_found(self, reservation_service, actor, sample_guest, sample_suite_room, sample_rate_plan):
        with pytest.raises(RateNotFoundError):
            reservation_service.create_reservation(
                _payload(sample_guest, sample_suite_room, sample_rate_plan), actor
            )

    def test_conflict_checked_before_capacity(self, reservation_service, actor, sample_guest, sample_guest_2,
                                              sample_room, sample_rate_plan):
        reservation_service.create_reservation(_payload(sample_guest, sample_room, sample_rate_plan), actor)

        with pytest.raises(ConflictError):
            reservation_service.create_reservation(
                _payload(sample_guest_2, sample_room, sample_rate_plan, guest_count=5), actor
            )

    def test_back_to_back_and_overlap(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        a = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan, date(2024, 3, 1), date(2024, 3, 3)), actor
        )
        b = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan, date(2024, 3, 3), date(2024, 3, 5)), actor
        )
        assert a.id != b.id

        with pytest.raises(ConflictError) as exc:
            reservation_service.create_reservation(
                _payload(sample_guest, sample_room, sample_rate_plan, date(2024, 3, 2), date(2024, 3, 4)), actor
            )
        assert set(exc.value.conflicting_ids) == {a.id, b.id}

    def test_cancelled_reservation_frees_dates(self, reservation_service, actor, sample_guest,
                                               sample_room, sample_rate_plan):
        first = reservation_service.create_reservation(_payload(sample_guest, sample_room, sample_rate_plan), actor)
        reservation_service.cancel_reservation(first.id, actor)

        second = reservation_service.create_reservation(_payload(sample_guest, sample_room, sample_rate_plan), actor)
        assert second.status == ReservationStatus.CONFIRMED

    def test_recheck_after_insert_rolls_back(self, reservation_service, actor, db_session, sample_guest,
                                             sample_room, sample_rate_plan, monkeypatch):
        existing = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan), actor
        )
        # 模拟两个请求同时通过预检查
        monkeypatch.setattr(reservation_service, "_ensure_available", lambda *args, **kwargs: None)

        with pytest.raises(ConflictError) as exc:
            reservation_service.create_reservation(_payload(sample_guest, sample_room, sample_rate_plan), actor)

        assert exc.value.conflicting_ids == [existing.id]
        assert db_session.query(Reservation).count() == 1

    def test_create_audited(self, reservation_service, actor, db_session, sample_guest, sample_room,
                            sample_rate_plan):
        reservation = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan), actor
        )

        created = db_session.query(AuditLog).filter(AuditLog.entity_type == "Reservation").one()
        assert created.action == AuditAction.CREATE
        assert created.entity_id == reservation.id

        room_log = db_session.query(AuditLog).filter(AuditLog.entity_type == "Room").one()
        assert json.loads(room_log.changes) == {"status": {"old": "available", "new": "reserved"}}


class TestLifecycle:

    @pytest.fixture
    def reservation(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        return reservation_service.create_reservation(_payload(sample_guest, sample_room, sample_rate_plan), actor)

    def test_check_in(self, reservation_service, actor, db_session, clock, reservation):
        checked_in = reservation_service.check_in(reservation.id, actor)

        assert checked_in.status == ReservationStatus.CHECKED_IN
        assert checked_in.actual_check_in == datetime(2024, 2, 20, 9, 0)
        assert _room_status(db_session, reservation.room_id) == RoomStatus.OCCUPIED

    def test_check_out(self, reservation_service, actor, db_session, clock, reservation):
        reservation_service.check_in(reservation.id, actor)
        clock.advance(days=2)

        checked_out = reservation_service.check_out(reservation.id, actor)

        assert checked_out.status == ReservationStatus.CHECKED_OUT
        assert checked_out.actual_check_out == datetime(2024, 2, 22, 9, 0)
        assert _room_status(db_session, reservation.room_id) == RoomStatus.CLEANING

    def test_check_out_requires_checked_in(self, reservation_service, actor, reservation):
        with pytest.raises(InvalidTransitionError) as exc:
            reservation_service.check_out(reservation.id, actor)
        assert exc.value.from_state == ReservationStatus.CONFIRMED
        assert exc.value.trigger == "check_out"

    def test_check_in_after_check_out(self, reservation_service, actor, reservation):
        reservation_service.check_in(reservation.id, actor)
        reservation_service.check_out(reservation.id, actor)

        with pytest.raises(InvalidTransitionError):
            reservation_service.check_in(reservation.id, actor)

    def test_cancel_releases_room(self, reservation_service, actor, db_session, reservation):
        cancelled = reservation_service.cancel_reservation(reservation.id, actor, reason="行程变更")

        assert cancelled.status == ReservationStatus.CANCELLED
        assert cancelled.cancel_reason == "行程变更"
        assert _room_status(db_session, reservation.room_id) == RoomStatus.AVAILABLE

    def test_cancel_checked_in_releases_room(self, reservation_service, actor, db_session, reservation):
        reservation_service.check_in(reservation.id, actor)
        reservation_service.cancel_reservation(reservation.id, actor)
        assert _room_status(db_session, reservation.room_id) == RoomStatus.AVAILABLE

    def test_cancel_after_check_out_fails(self, reservation_service, actor, db_session, reservation):
        reservation_service.check_in(reservation.id, actor)
        reservation_service.check_out(reservation.id, actor)

        with pytest.raises(InvalidTransitionError):
            reservation_service.cancel_reservation(reservation.id, actor)
        assert _room_status(db_session, reservation.room_id) == RoomStatus.CLEANING

    def test_cancel_keeps_room_in_maintenance(self, reservation_service, actor, db_session, reservation):
        room = db_session.query(Room).filter(Room.id == reservation.room_id).one()
        room.status = RoomStatus.MAINTENANCE
        db_session.commit()

        reservation_service.cancel_reservation(reservation.id, actor)
        assert _room_status(db_session, reservation.room_id) == RoomStatus.MAINTENANCE

    def test_create_and_cancel_ignore_other_holders(self, reservation_service, actor, db_session,
                                                    sample_guest_2, sample_room, sample_rate_plan, reservation):
        in_house = reservation_service.create_reservation(
            _payload(sample_guest_2, sample_room, sample_rate_plan, date(2024, 2, 20), date(2024, 2, 22)), actor
        )
        reservation_service.check_in(in_house.id, actor)
        reservation_service.cancel_reservation(reservation.id, actor)
        assert _room_status(db_session, sample_room.id) == RoomStatus.AVAILABLE

        reservation_service.create_reservation(
            _payload(sample_guest_2, sample_room, sample_rate_plan, date(2024, 3, 10), date(2024, 3, 12)), actor
        )
        assert _room_status(db_session, sample_room.id) == RoomStatus.RESERVED

    def test_unknown_reservation(self, reservation_service, actor):
        with pytest.raises(NotFoundError):
            reservation_service.check_in(999, actor)

    def test_transition_audit_diff(self, reservation_service, actor, db_session, reservation):
        reservation_service.check_in(reservation.id, actor)

        log = db_session.query(AuditLog).filter(
            AuditLog.entity_type == "Reservation", AuditLog.action == AuditAction.UPDATE
        ).one()
        changes = json.loads(log.changes)
        assert set(changes) == {"status", "actual_check_in"}
        assert changes["status"] == {"old": "confirmed", "new": "checked_in"}
        assert changes["actual_check_in"] == {"old": None, "new": "2024-02-20T09:00:00"}

    def test_cancel_reason_in_audit_diff(self, reservation_service, actor, db_session, reservation):
        reservation_service.cancel_reservation(reservation.id, actor, reason="行程变更")

        log = db_session.query(AuditLog).filter(
            AuditLog.entity_type == "Reservation", AuditLog.action == AuditAction.UPDATE
        ).one()
        changes = json.loads(log.changes)
        assert set(changes) == {"status", "cancel_reason"}
        assert changes["cancel_reason"] == {"old": None, "new": "行程变更"}


class TestUpdateReservation:

    @pytest.fixture
    def reservation(self, reservation_service, actor, sample_guest, sample_room, sample_rate_plan):
        return reservation_service.create_reservation(_payload(sample_guest, sample_room, sample_rate_plan), actor)

    def test_extend_stay_recalculates_total(self, reservation_service, actor, reservation):
        updated = reservation_service.update_reservation(
            reservation.id, ReservationUpdate(check_out_date=date(2024, 3, 5)), actor
        )
        assert updated.check_out_date == date(2024, 3, 5)
        assert updated.total_amount == Decimal("400.00")

    def test_special_requests_only(self, reservation_service, actor, reservation):
        updated = reservation_service.update_reservation(
            reservation.id, ReservationUpdate(special_requests="无烟房"), actor
        )
        assert updated.special_requests == "无烟房"
        assert updated.total_amount == Decimal("200.00")

    def test_invalid_dates(self, reservation_service, actor, reservation):
        with pytest.raises(DomainValidationError):
            reservation_service.update_reservation(
                reservation.id, ReservationUpdate(check_in_date=date(2024, 3, 3)), actor
            )

    def test_conflict_excludes_self(self, reservation_service, actor, sample_guest, sample_room,
                                    sample_rate_plan, reservation):
        reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan, date(2024, 3, 5), date(2024, 3, 7)), actor
        )

        updated = reservation_service.update_reservation(
            reservation.id, ReservationUpdate(check_out_date=date(2024, 3, 5)), actor
        )
        assert updated.check_out_date == date(2024, 3, 5)

        with pytest.raises(ConflictError):
            reservation_service.update_reservation(
                reservation.id, ReservationUpdate(check_out_date=date(2024, 3, 6)), actor
            )

    def test_move_room(self, reservation_service, actor, db_session, sample_room, sample_room_102, reservation):
        updated = reservation_service.update_reservation(
            reservation.id, ReservationUpdate(room_id=sample_room_102.id), actor
        )

        assert updated.room_id == sample_room_102.id
        assert _room_status(db_session, sample_room.id) == RoomStatus.AVAILABLE
        assert _room_status(db_session, sample_room_102.id) == RoomStatus.RESERVED

    def test_move_room_keeps_in_house_guest_room_occupied(self, reservation_service, actor, db_session,
                                                          sample_guest_2, sample_room, sample_room_102,
                                                          sample_rate_plan, reservation):
        in_house = reservation_service.create_reservation(
            _payload(sample_guest_2, sample_room, sample_rate_plan, date(2024, 2, 20), date(2024, 2, 22)), actor
        )
        reservation_service.check_in(in_house.id, actor)
        assert _room_status(db_session, sample_room.id) == RoomStatus.OCCUPIED

        reservation_service.update_reservation(
            reservation.id, ReservationUpdate(room_id=sample_room_102.id), actor
        )

        assert _room_status(db_session, sample_room.id) == RoomStatus.OCCUPIED
        assert _room_status(db_session, sample_room_102.id) == RoomStatus.RESERVED

    def test_move_room_keeps_reservation_of_other_booking(self, reservation_service, actor, db_session,
                                                          sample_guest_2, sample_room, sample_room_102,
                                                          sample_rate_plan, reservation):
        reservation_service.create_reservation(
            _payload(sample_guest_2, sample_room, sample_rate_plan, date(2024, 3, 10), date(2024, 3, 12)), actor
        )

        reservation_service.update_reservation(
            reservation.id, ReservationUpdate(room_id=sample_room_102.id), actor
        )

        assert _room_status(db_session, sample_room.id) == RoomStatus.RESERVED

    def test_move_checked_in_guest(self, reservation_service, actor, db_session, sample_room,
                                   sample_room_102, reservation):
        reservation_service.check_in(reservation.id, actor)

        reservation_service.update_reservation(
            reservation.id, ReservationUpdate(room_id=sample_room_102.id), actor
        )

        assert _room_status(db_session, sample_room.id) == RoomStatus.CLEANING
        assert _room_status(db_session, sample_room_102.id) == RoomStatus.OCCUPIED

    def test_move_room_audit_uses_labels(self, reservation_service, actor, db_session,
                                         sample_room_102, reservation):
        reservation_service.update_reservation(
            reservation.id, ReservationUpdate(room_id=sample_room_102.id), actor
        )

        log = db_session.query(AuditLog).filter(
            AuditLog.entity_type == "Reservation", AuditLog.action == AuditAction.UPDATE
        ).one()
        changes = json.loads(log.changes)
        assert changes["room_id"]["old"]["label"] == "101"
        assert changes["room_id"]["new"] == {"id": sample_room_102.id, "label": "102"}

    def test_move_to_unpriced_room_type(self, reservation_service, actor, sample_suite_room, reservation):
        with pytest.raises(RateNotFoundError):
            reservation_service.update_reservation(
                reservation.id, ReservationUpdate(room_id=sample_suite_room.id), actor
            )

    def test_capacity_rechecked(self, reservation_service, actor, reservation):
        with pytest.raises(DomainValidationError):
            reservation_service.update_reservation(reservation.id, ReservationUpdate(guest_count=3), actor)

    def test_terminal_reservation_cannot_change(self, reservation_service, actor, reservation):
        reservation_service.cancel_reservation(reservation.id, actor)

        with pytest.raises(InvalidTransitionError) as exc:
            reservation_service.update_reservation(
                reservation.id, ReservationUpdate(guest_count=1), actor
            )
        assert exc.value.trigger == "update"


class TestQueries:

    def test_lookups(self, reservation_service, actor, sample_guest, sample_guest_2, sample_room,
                     sample_room_102, sample_rate_plan):
        a = reservation_service.create_reservation(
            _payload(sample_guest, sample_room, sample_rate_plan, date(2024, 2, 20), date(2024, 2, 22)), actor
        )
        b = reservation_service.create_reservation(
            _payload(sample_guest_2, sample_room_102, sample_rate_plan, date(2024, 3, 10), date(2024, 3, 12)), actor
        )
        reservation_service.cancel_reservation(b.id, actor)

        assert reservation_service.get_reservation_by_no(a.reservation_no).id == a.id
        assert [r.id for r in reservation_service.get_reservations(status=ReservationStatus.CANCELLED)] == [b.id]
        assert [r.id for r in reservation_service.get_reservations(guest_id=sample_guest.id)] == [a.id]
        assert [r.id for r in reservation_service.get_reservations_by_date_range(
            date(2024, 3, 12), date(2024, 3, 31))] == [b.id]
        assert [r.id for r in reservation_service.get_today_arrivals()] == [a.id]
