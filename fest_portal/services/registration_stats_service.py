"""
Registration statistics for staff dashboards.

Figures are computed on request from the registrations table. Coordinators
only see the students of the year their active role manages; administrators
and event managers see every year.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Depends
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.access.context import AccessContext
from fest_portal.db.models import (
    ACTIVE_REGISTRATION_STATUSES,
    AcademicYear,
    Event,
    EventMode,
    Registration,
    RegistrationStatus,
    Role,
    Student,
)
from fest_portal.db.session import get_async_session
from fest_portal.schemas.registration_stats_schemas import (
    EventRegistrationStats,
    RegistrationStatsOverview,
    RegistrationStatsQueryParams,
    YearRegistrationStats,
)
from fest_portal.utils.logging import get_logger

logger = get_logger()

NEAR_CAPACITY_PERCENT = 80

CountKey = Tuple[uuid.UUID, AcademicYear]


def fill_percent(active: int, max_participants: Optional[int]) -> Optional[int]:
    if not max_participants:
        return None
    return round(active * 100 / max_participants)


class RegistrationStatsService:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    @staticmethod
    def visible_years(actor: AccessContext) -> List[AcademicYear]:
        if actor.acting_as(Role.ADMIN, Role.EVENT_MANAGER):
            return list(AcademicYear)
        if actor.managed_year is not None:
            return [actor.managed_year]
        raise ValueError("INSUFFICIENT_ROLE")

    async def get_event_stats(
        self, event_id: Any, actor: AccessContext
    ) -> EventRegistrationStats:
        years = self.visible_years(actor)
        result = await self.db.execute(select(Event).where(Event.id == event_id))
        event = result.scalar_one_or_none()
        if not event:
            raise ValueError("EVENT_NOT_FOUND")

        [stats] = await self._collect([event], years)
        return stats

    async def get_overview(
        self, query_params: RegistrationStatsQueryParams, actor: AccessContext
    ) -> RegistrationStatsOverview:
        years = self.visible_years(actor)

        query = select(Event)
        if query_params.category is not None:
            query = query.where(Event.category == query_params.category)
        if query_params.is_active is not None:
            query = query.where(Event.is_active == query_params.is_active)
        result = await self.db.execute(query.order_by(Event.name, Event.id))
        events = list(result.scalars().all())

        event_stats = await self._collect(events, years)
        overview = RegistrationStatsOverview(
            academic_year=years[0] if len(years) == 1 else None,
            event_count=len(event_stats),
            events=event_stats,
        )
        for stats in event_stats:
            overview.total += stats.total
            overview.pending += stats.pending
            overview.approved += stats.approved
            overview.rejected += stats.rejected
            if stats.active == 0:
                overview.events_without_registrations.append(stats.event_id)
            if any(
                (year.fill_percent or 0) >= NEAR_CAPACITY_PERCENT
                for year in stats.years
            ):
                overview.near_capacity.append(stats.event_id)

        if event_stats:
            overview.average_per_event = round(overview.active / len(event_stats))

        logger.info(
            f"Computed registration stats for {len(event_stats)} events across {len(years)} year(s)"
        )
        return overview

    async def _collect(
        self, events: Sequence[Event], years: List[AcademicYear]
    ) -> List[EventRegistrationStats]:
        if not events:
            return []
        event_ids = [event.id for event in events]

        status_counts = await self.db.execute(
            select(
                Registration.event_id,
                Student.academic_year,
                Registration.status,
                func.count(Registration.id),
            )
            .join(Student, Registration.student_id == Student.id)
            .where(
                Registration.event_id.in_(event_ids),
                Student.academic_year.in_(years),
            )
            .group_by(Registration.event_id, Student.academic_year, Registration.status)
        )
        counts: Dict[CountKey, Dict[RegistrationStatus, int]] = {}
        for event_id, year, status, count in status_counts.all():
            counts.setdefault((event_id, year), {})[status] = count

        # A team whose members differ in status still counts once
        team_counts = await self.db.execute(
            select(
                Registration.event_id,
                Student.academic_year,
                func.count(distinct(Registration.group_id)),
            )
            .join(Student, Registration.student_id == Student.id)
            .where(
                Registration.event_id.in_(event_ids),
                Student.academic_year.in_(years),
                Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
                Registration.group_id.is_not(None),
            )
            .group_by(Registration.event_id, Student.academic_year)
        )
        teams: Dict[CountKey, int] = {
            (event_id, year): count for event_id, year, count in team_counts.all()
        }

        return [self._event_stats(event, years, counts, teams) for event in events]

    @staticmethod
    def _event_stats(
        event: Event,
        years: List[AcademicYear],
        counts: Dict[CountKey, Dict[RegistrationStatus, int]],
        teams: Dict[CountKey, int],
    ) -> EventRegistrationStats:
        stats = EventRegistrationStats(
            event_id=event.id,
            event_name=event.name,
            category=event.category,
            mode=event.mode,
            max_participants=event.max_participants,
        )
        for year in years:
            by_status = counts.get((event.id, year), {})
            year_stats = YearRegistrationStats(
                academic_year=year,
                pending=by_status.get(RegistrationStatus.PENDING, 0),
                approved=by_status.get(RegistrationStatus.APPROVED, 0),
                rejected=by_status.get(RegistrationStatus.REJECTED, 0),
            )
            year_stats.total = year_stats.active + year_stats.rejected
            if event.mode == EventMode.GROUP:
                year_stats.team_count = teams.get((event.id, year), 0)
            else:
                year_stats.fill_percent = fill_percent(
                    year_stats.active, event.max_participants
                )

            stats.years.append(year_stats)
            stats.total += year_stats.total
            stats.pending += year_stats.pending
            stats.approved += year_stats.approved
            stats.rejected += year_stats.rejected
        return stats


def get_registration_stats_service(
    db: AsyncSession = Depends(get_async_session),
) -> RegistrationStatsService:
    return RegistrationStatsService(db)
