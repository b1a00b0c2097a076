"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class GradeNotFoundException(BusinessException):
    def __init__(self, grade_id: Optional[str] = None):
        details = {"grade_id": grade_id} if grade_id else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Grade not found",
            error_type="GradeNotFound",
            details=details,
        )


class GradeAlreadyExistsException(BusinessException):
    def __init__(self, grade_id: str):
        super().__init__(
            code=BusinessCode.ALREADY_EXISTS,
            message=f"Grade {grade_id} already exists",
            error_type="GradeAlreadyExists",
            details={"grade_id": grade_id},
            field="grade_id",
        )


class DatabaseException(BusinessException):
    """Storage failure; the original error is kept on ``__cause__`` only."""

    def __init__(self, operation: str):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message=f"Database operation failed: {operation}",
            error_type="DatabaseError",
            details={"operation": operation},
        )


class OperationTimeoutException(BusinessException):
    def __init__(self, operation: Optional[str] = None):
        details = {"operation": operation} if operation else None
        super().__init__(
            code=BusinessCode.DEADLINE_EXCEEDED,
            message="Deadline exceeded",
            error_type="DeadlineExceeded",
            details=details,
        )
