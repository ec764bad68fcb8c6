# urgentcare/routes/deps.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from urgentcare.db.session import get_db
from urgentcare.services.change_feed import ChangeFeed
from urgentcare.services.lifecycle import LifecycleEngine
from urgentcare.services.matching import MatchingGateway
from urgentcare.services.stats import StatsService
from urgentcare.services.views import RequestViews


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed


def get_lifecycle(db: Session = Depends(get_db), feed: ChangeFeed = Depends(get_change_feed)) -> LifecycleEngine:
    return LifecycleEngine(db, feed)


def get_matching(db: Session = Depends(get_db), feed: ChangeFeed = Depends(get_change_feed)) -> MatchingGateway:
    return MatchingGateway(db, feed)


def get_views(db: Session = Depends(get_db)) -> RequestViews:
    return RequestViews(db)


def get_stats(db: Session = Depends(get_db)) -> StatsService:
    return StatsService(db)
