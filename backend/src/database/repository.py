"""Shared plumbing for session-backed repositories."""

import logging
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import TransientStoreError


logger = logging.getLogger(__name__)


class SessionRepository:
    """Base for repositories that own commit/rollback of their writes."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _insert(self, model: type) -> Any:
        """Dialect insert construct supporting ON CONFLICT."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        msg = f"Unsupported database dialect for upserts: {dialect}"
        raise NotImplementedError(msg)

    async def _commit(self, operation: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception("Store failure during %s", operation)
            raise TransientStoreError(operation, e) from e

    async def _execute_write(self, statement: Any, operation: str) -> Any:
        try:
            return await self.session.execute(statement)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception("Store failure during %s", operation)
            raise TransientStoreError(operation, e) from e
