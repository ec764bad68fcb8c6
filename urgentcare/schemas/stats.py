# urgentcare/schemas/stats.py
from typing import Dict, Optional

from pydantic import BaseModel


class ProviderStatsOut(BaseModel):
    today_earnings: float
    today_visits: int
    available_requests: int


class AdminStatsOut(BaseModel):
    total_revenue: float
    completed_visits: int
    active_requests: int
    total_patients: int
    active_providers: int
    status_counts: Dict[str, int]
    # None when the previous window has nothing to compare against
    revenue_change_pct: Optional[float] = None
    visit_change_pct: Optional[float] = None
