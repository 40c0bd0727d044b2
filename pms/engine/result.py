"""
pms/engine/result.py

统一的操作结果类型 - 对外操作面的每个方法都返回此类型
成功时携带返回值，失败时携带带类型的业务错误
"""
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from pms.errors import ErrorKind, PmsError

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """
    操作结果

    Attributes:
        success: 是否成功
        value: 成功时的返回值
        error: 失败时的业务错误
    """
    success: bool
    value: Optional[T] = None
    error: Optional[PmsError] = None

    @staticmethod
    def ok(value: Any = None) -> "OperationResult":
        """快速创建成功结果"""
        return OperationResult(success=True, value=value)

    @staticmethod
    def fail(error: PmsError) -> "OperationResult":
        """快速创建失败结果"""
        return OperationResult(success=False, error=error)

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.error_code if self.error else None

    def unwrap(self) -> T:
        """取出返回值，失败时重新抛出业务错误"""
        if not self.success:
            raise self.error
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
        }
