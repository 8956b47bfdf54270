"""
Read-only diagnostics for a tracking session: latest samples and sync statistics.
"""

from typing import List

from sqlalchemy import select, func, case, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.location_sample import LocationSample


async def get_latest_samples(db: AsyncSession, token_id: int, limit: int = 5) -> List[LocationSample]:
    """Most recent samples for a token, newest first."""
    result = await db.execute(
        select(LocationSample)
        .where(LocationSample.token_id == token_id)
        .order_by(desc(LocationSample.tracked_at), desc(LocationSample.id))
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_sync_statistics(db: AsyncSession, token_id: int) -> dict:
    """
    Delivery statistics for a token.

    Returns:
        {"total": int, "synced": int, "failed": int, "last_tracked_at": datetime | None}
    """
    synced_expr = func.sum(case((LocationSample.synced_to_partner.is_(True), 1), else_=0))

    result = await db.execute(
        select(
            func.count(LocationSample.id),
            synced_expr,
            func.max(LocationSample.tracked_at)
        ).where(LocationSample.token_id == token_id)
    )
    total, synced, last_tracked_at = result.one()
    total = total or 0
    synced = int(synced or 0)

    return {
        "total": total,
        "synced": synced,
        "failed": total - synced,
        "last_tracked_at": last_tracked_at,
    }
