"""Dashboard aggregates for providers and admins.

Trend figures compare the trailing 7 days against the 7 days before them,
using completion time.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from urgentcare.auth.schemas import Principal
from urgentcare.models.care_request import CareRequest, CareRequestStatus as S
from urgentcare.schemas.stats import AdminStatsOut, ProviderStatsOut
from urgentcare.services.errors import as_result
from urgentcare.services.status import ACTIVE_VISIT_STATUSES, UNCLAIMED_STATUSES

TREND_WINDOW = timedelta(days=7)


def change_pct(current, previous) -> Optional[float]:
    previous = Decimal(str(previous or 0))
    if previous == 0:
        return None
    current = Decimal(str(current or 0))
    return round(float((current - previous) / previous * 100), 1)


class StatsService:
    def __init__(self, db: Session):
        self.db = db

    def _completed_between(self, start: datetime, end: datetime, provider_id: Optional[str] = None) -> Tuple[Decimal, int]:
        stmt = select(
            func.coalesce(func.sum(CareRequest.total_price), 0),
            func.count(CareRequest.id),
        ).where(
            CareRequest.status == S.COMPLETED,
            CareRequest.completed_at >= start,
            CareRequest.completed_at < end,
        )
        if provider_id is not None:
            stmt = stmt.where(CareRequest.provider_id == provider_id)
        revenue, visits = self.db.execute(stmt).one()
        return Decimal(str(revenue)), int(visits)

    def _count_unclaimed(self) -> int:
        stmt = select(func.count(CareRequest.id)).where(
            CareRequest.status.in_(list(UNCLAIMED_STATUSES)),
            CareRequest.provider_id.is_(None),
        )
        return int(self.db.execute(stmt).scalar_one())

    @as_result
    def provider_dashboard(self, principal: Principal, now: Optional[datetime] = None) -> ProviderStatsOut:
        now = now or datetime.now(timezone.utc)
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        earnings, visits = self._completed_between(start_of_day, now + timedelta(seconds=1), principal.id)
        return ProviderStatsOut(
            today_earnings=float(earnings),
            today_visits=visits,
            available_requests=self._count_unclaimed(),
        )

    @as_result
    def admin_dashboard(self, now: Optional[datetime] = None) -> AdminStatsOut:
        now = now or datetime.now(timezone.utc)
        db = self.db

        status_counts = {s.value: 0 for s in S}
        for status, count in db.execute(select(CareRequest.status, func.count(CareRequest.id)).group_by(CareRequest.status)):
            status_counts[S(status).value] = int(count)

        total_revenue = db.execute(
            select(func.coalesce(func.sum(CareRequest.total_price), 0)).where(CareRequest.status == S.COMPLETED)
        ).scalar_one()
        total_patients = db.execute(select(func.count(func.distinct(CareRequest.patient_id)))).scalar_one()
        active_providers = db.execute(
            select(func.count(func.distinct(CareRequest.provider_id))).where(
                CareRequest.status.in_(list(ACTIVE_VISIT_STATUSES))
            )
        ).scalar_one()

        upper = now + timedelta(seconds=1)
        rev_now, visits_now = self._completed_between(upper - TREND_WINDOW, upper)
        rev_prev, visits_prev = self._completed_between(upper - 2 * TREND_WINDOW, upper - TREND_WINDOW)

        return AdminStatsOut(
            total_revenue=float(total_revenue),
            completed_visits=status_counts[S.COMPLETED.value],
            active_requests=sum(status_counts[s.value] for s in ACTIVE_VISIT_STATUSES | UNCLAIMED_STATUSES),
            total_patients=int(total_patients),
            active_providers=int(active_providers),
            status_counts=status_counts,
            revenue_change_pct=change_pct(rev_now, rev_prev),
            visit_change_pct=change_pct(visits_now, visits_prev),
        )
