"""Repository abstraction for grade records."""
from __future__ import annotations

from abc import ABC, abstractmethod

from .entity import Grade


class GradeRepository(ABC):
    """Contract for persisting and querying grades.

    Implementations receive records that already passed create validation
    and carry their identity. ``update`` and ``delete`` raise
    ``GradeNotFoundException`` when the identity is unknown; ``create``
    raises ``GradeAlreadyExistsException`` on an identity clash.
    """

    @abstractmethod
    async def create(self, grade: Grade) -> Grade:
        ...

    @abstractmethod
    async def get_by_id(self, grade_id: str) -> Grade | None:
        ...

    @abstractmethod
    async def get_by_course(self, course_id: str, semester: str) -> list[Grade]:
        ...

    @abstractmethod
    async def get_by_student_in_course(
        self, course_id: str, semester: str, student_id: str
    ) -> list[Grade]:
        ...

    @abstractmethod
    async def get_by_student_in_semester(self, student_id: str, semester: str) -> list[Grade]:
        ...

    @abstractmethod
    async def update(self, grade: Grade) -> Grade:
        ...

    @abstractmethod
    async def delete(self, grade_id: str) -> None:
        ...
