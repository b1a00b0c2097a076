"""Unit of Work 实现（SQLAlchemy 与内存两种存储）"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.grade_repository import SQLAlchemyGradeRepository
from infrastructure.repositories.in_memory_grade_repository import (
    InMemoryGradeRepository,
    InMemoryGradeStore,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work

    会话工厂由启动流程注入；每个 UoW 使用一个独立会话，连接取自引擎的共享连接池。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session
        self.grade_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.grade_repository = SQLAlchemyGradeRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.grade_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """内存实现：每个仓储操作本身即原子写入，commit/rollback 只记录状态。"""

    def __init__(self, store: InMemoryGradeStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.grade_repository = InMemoryGradeRepository(self._store)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            self.grade_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False
