from typing import List, Tuple

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.db.models import ActivityLog
from fest_portal.db.session import get_async_session
from fest_portal.schemas.activity_log_schemas import (
    ActivityLogQueryParams,
    ActivityLogResponse,
)


class ActivityLogService:
    """Read access to the audit trail"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def list_recent(
        self, query_params: ActivityLogQueryParams
    ) -> Tuple[List[ActivityLogResponse], int]:
        """One page of entries, newest first, and the total matching the filters"""
        filters = []
        if query_params.action:
            filters.append(ActivityLog.action == query_params.action)
        if query_params.user_id:
            filters.append(ActivityLog.user_id == query_params.user_id)

        total = (
            await self.db.execute(
                select(func.count()).select_from(ActivityLog).where(*filters)
            )
        ).scalar_one()

        query = (
            select(ActivityLog)
            .where(*filters)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id)
            .offset((query_params.page - 1) * query_params.per_page)
            .limit(query_params.per_page)
        )
        result = await self.db.execute(query)
        logs = [
            ActivityLogResponse.model_validate(log) for log in result.scalars().all()
        ]
        return logs, total


def get_activity_log_service(
    db: AsyncSession = Depends(get_async_session),
) -> ActivityLogService:
    return ActivityLogService(db)
