from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..activity import daily_activity, parse_day, weekly_activity
from ..db import get_db
from ..identity import Learner
from .auth import get_current_learner


router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("/daily")
async def daily(date: Optional[str] = None, learner: Learner = Depends(get_current_learner), db: Session = Depends(get_db)):
	# Defaults to yesterday
	return daily_activity(db, learner.user_id, parse_day(date)).to_dict()


@router.get("/weekly")
async def weekly(week_ending: Optional[str] = None, learner: Learner = Depends(get_current_learner), db: Session = Depends(get_db)):
	# Defaults to last Monday-Sunday
	return weekly_activity(db, learner.user_id, parse_day(week_ending)).to_dict()
