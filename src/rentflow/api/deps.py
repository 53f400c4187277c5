"""API dependencies."""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.db.base import async_session_factory
from rentflow.integrations.payment_rail import PaymentRail
from rentflow.integrations.payment_rail import get_payment_rail as _get_payment_rail

logger = logging.getLogger("rentflow.api")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_payment_rail() -> PaymentRail:
    """Payment rail used for payment submission."""
    return _get_payment_rail()
