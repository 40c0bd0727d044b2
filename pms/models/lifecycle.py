"""
预订生命周期 - 状态转换表与房间状态联动

| 触发      | 源状态                    | 目标状态     | 房间状态                        |
|-----------|---------------------------|--------------|---------------------------------|
| create    | -                         | CONFIRMED    | RESERVED                        |
| check_in  | PENDING, CONFIRMED        | CHECKED_IN   | OCCUPIED                        |
| check_out | CHECKED_IN                | CHECKED_OUT  | CLEANING                        |
| cancel    | 除 CHECKED_OUT 以外的状态  | CANCELLED    | 原为 RESERVED/OCCUPIED 时 AVAILABLE |

NO_SHOW 只是定义的状态，没有任何转换进入它。
创建与取消的房间联动不考虑同一房间上的其他预订；换房见 ReservationService._vacate_room。
"""
from typing import Any, Dict

from pms.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from pms.models.ontology import ReservationStatus, RoomStatus

CHECK_IN = "check_in"
CHECK_OUT = "check_out"
CANCEL = "cancel"


def reserve_room(context: Dict[str, Any]) -> None:
    context["room"].status = RoomStatus.RESERVED


def occupy_room(context: Dict[str, Any]) -> None:
    context["room"].status = RoomStatus.OCCUPIED


def send_room_to_cleaning(context: Dict[str, Any]) -> None:
    context["room"].status = RoomStatus.CLEANING


def release_room(context: Dict[str, Any]) -> None:
    room = context["room"]
    if room.status in (RoomStatus.RESERVED, RoomStatus.OCCUPIED):
        room.status = RoomStatus.AVAILABLE


# 创建预订时执行（创建不是状态间的转换，直接进入初始状态）
CREATE_EFFECTS = [reserve_room]


def _build_transitions():
    transitions = [
        StateTransition(ReservationStatus.PENDING, ReservationStatus.CHECKED_IN, CHECK_IN,
                        side_effects=[occupy_room]),
        StateTransition(ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN, CHECK_IN,
                        side_effects=[occupy_room]),
        StateTransition(ReservationStatus.CHECKED_IN, ReservationStatus.CHECKED_OUT, CHECK_OUT,
                        side_effects=[send_room_to_cleaning]),
    ]
    for status in ReservationStatus:
        if status == ReservationStatus.CHECKED_OUT:
            continue
        transitions.append(
            StateTransition(status, ReservationStatus.CANCELLED, CANCEL, side_effects=[release_room])
        )
    return transitions


reservation_state_machine = StateMachine(StateMachineConfig(
    name="Reservation",
    states=list(ReservationStatus),
    transitions=_build_transitions(),
    initial_state=ReservationStatus.CONFIRMED,
    terminal_states=[
        ReservationStatus.CHECKED_OUT,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    ],
))


__all__ = [
    "CHECK_IN",
    "CHECK_OUT",
    "CANCEL",
    "CREATE_EFFECTS",
    "reserve_room",
    "occupy_room",
    "send_room_to_cleaning",
    "release_room",
    "reservation_state_machine",
]
