"""
pms/engine/clock.py

时钟 - 由调用方注入，业务代码不直接读取系统时间
"""
from datetime import date, datetime, timedelta


class Clock:
    """时钟接口"""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """系统时钟"""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """
    固定时钟（用于测试）

    Example:
        >>> clock = FixedClock(datetime(2024, 2, 20, 9, 0))
        >>> clock.today()
        datetime.date(2024, 2, 20)
    """

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        """按 timedelta 参数推进时间"""
        self.current = self.current + timedelta(**kwargs)


system_clock = SystemClock()
