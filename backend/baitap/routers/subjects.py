from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..identity import Learner
from ..views import subject_view
from .auth import get_current_learner


router = APIRouter(prefix="/subjects", tags=["subjects"])


@router.get("/{subject_id}")
async def get_subject(subject_id: str, learner: Learner = Depends(get_current_learner), db: Session = Depends(get_db)):
	return subject_view(db, learner, subject_id)
