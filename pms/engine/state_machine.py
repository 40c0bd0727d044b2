"""
pms/engine/state_machine.py

状态机引擎 - 声明式转换表 + 副作用

实体自身保存当前状态，引擎只负责根据 (当前状态, 触发动作) 查表，
判断转换是否合法并执行副作用。
"""
from typing import Any, Callable, Dict, Hashable, List, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
        condition: 可选的转换条件
        side_effects: 副作用函数列表，参数为调用方传入的上下文
    """

    from_state: Hashable
    to_state: Hashable
    trigger: str
    condition: Optional[Callable[[Dict[str, Any]], bool]] = None
    side_effects: List[Callable[[Dict[str, Any]], None]] = field(default_factory=list)

    def is_allowed(self, context: Dict[str, Any]) -> bool:
        """检查转换是否被允许"""
        if self.condition is None:
            return True
        return bool(self.condition(context))

    def execute_side_effects(self, context: Dict[str, Any]) -> None:
        """执行副作用（异常向上传播，与状态变更处于同一工作单元）"""
        for effect in self.side_effects:
            effect(context)


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
        terminal_states: 终止状态
    """

    name: str
    states: List[Hashable]
    transitions: List[StateTransition]
    initial_state: Hashable
    terminal_states: List[Hashable] = field(default_factory=list)


class StateMachine:
    """
    状态机引擎

    Example:
        >>> machine = StateMachine(StateMachineConfig(
        ...     name="Door",
        ...     states=["open", "closed"],
        ...     transitions=[StateTransition("open", "closed", "close")],
        ...     initial_state="open",
        ... ))
        >>> machine.can_fire("open", "close")
        True
        >>> machine.fire("open", "close").to_state
        'closed'
    """

    def __init__(self, config: StateMachineConfig):
        self._config = config
        self._transition_map: Dict[Hashable, Dict[str, StateTransition]] = {}

        known = set(config.states)
        if config.initial_state not in known:
            raise ValueError(f"Unknown initial state {config.initial_state!r} in {config.name}")

        # 构建转换映射: (from_state, trigger) -> transition
        for t in config.transitions:
            if t.from_state not in known or t.to_state not in known:
                raise ValueError(
                    f"Transition {t.trigger} references unknown state in {config.name}: "
                    f"{t.from_state!r} -> {t.to_state!r}"
                )
            self._transition_map.setdefault(t.from_state, {})[t.trigger] = t

    @property
    def config(self) -> StateMachineConfig:
        """获取状态机配置"""
        return self._config

    @property
    def initial_state(self) -> Hashable:
        return self._config.initial_state

    def is_terminal(self, state: Hashable) -> bool:
        return state in self._config.terminal_states

    def resolve(self, current_state: Hashable, trigger: str) -> Optional[StateTransition]:
        """查找 (当前状态, 触发动作) 对应的转换"""
        return self._transition_map.get(current_state, {}).get(trigger)

    def can_fire(self, current_state: Hashable, trigger: str,
                 context: Optional[Dict[str, Any]] = None) -> bool:
        """检查触发动作在当前状态下是否合法"""
        transition = self.resolve(current_state, trigger)
        return transition is not None and transition.is_allowed(context or {})

    def allowed_triggers(self, current_state: Hashable) -> List[str]:
        """当前状态下可用的触发动作"""
        return sorted(self._transition_map.get(current_state, {}).keys())

    def fire(self, current_state: Hashable, trigger: str,
             context: Optional[Dict[str, Any]] = None) -> Optional[StateTransition]:
        """
        执行状态转换

        Args:
            current_state: 实体当前状态
            trigger: 触发动作
            context: 传给条件与副作用的上下文

        Returns:
            命中的转换；不合法时返回 None（调用方负责上报错误）
        """
        context = context if context is not None else {}
        if not self.can_fire(current_state, trigger, context):
            logger.warning(
                f"Invalid transition in {self._config.name}: {current_state} (trigger: {trigger})"
            )
            return None

        transition = self.resolve(current_state, trigger)
        transition.execute_side_effects(context)
        logger.info(
            f"{self._config.name} transition: {current_state} -> {transition.to_state} (trigger: {trigger})"
        )
        return transition


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachine",
]
