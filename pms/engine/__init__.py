"""
pms/engine - 核心引擎模块

包含与具体业务无关的引擎组件：
- state_machine: 状态机引擎（声明式状态转换）
- audit: 审计差异引擎（可审计字段声明 + 字段级 diff）
- result: 统一操作结果
- clock: 可注入时钟

使用方式:
    >>> from pms.engine import StateMachine, OperationResult, FixedClock
"""

from pms.engine.state_machine import (
    StateTransition,
    StateMachineConfig,
    StateMachine,
)

from pms.engine.audit import (
    AuditEntity,
    AuditField,
    AUDITABLE_FIELDS,
    snapshot,
    diff,
)

from pms.engine.result import OperationResult

from pms.engine.clock import Clock, SystemClock, FixedClock, system_clock


__all__ = [
    # 状态机
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
    # 审计
    "AuditEntity",
    "AuditField",
    "AUDITABLE_FIELDS",
    "snapshot",
    "diff",
    # 结果
    "OperationResult",
    # 时钟
    "Clock",
    "SystemClock",
    "FixedClock",
    "system_clock",
]
