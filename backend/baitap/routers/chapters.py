from __future__ import annotations
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..identity import Learner
from ..progress import submit_chapter
from ..views import chapter_answers, chapter_view
from .auth import get_current_learner


router = APIRouter(prefix="/chapters", tags=["chapters"])


class SubmitChapterRequest(BaseModel):
	# {exerciseId: {questionId: "answer"}}
	exercises: Any = None
	status: Literal["draft", "submitted"] = "submitted"


@router.get("/{chapter_id}")
async def get_chapter(chapter_id: str, learner: Learner = Depends(get_current_learner), db: Session = Depends(get_db)):
	return chapter_view(db, learner, chapter_id)


@router.get("/{chapter_id}/answers")
async def get_chapter_answers(chapter_id: str, learner: Learner = Depends(get_current_learner), db: Session = Depends(get_db)):
	return chapter_answers(db, learner, chapter_id)


@router.post("/{chapter_id}/submit")
async def submit(
	chapter_id: str,
	req: SubmitChapterRequest,
	learner: Learner = Depends(get_current_learner),
	db: Session = Depends(get_db),
):
	return submit_chapter(db, learner, chapter_id, req.exercises, draft=req.status == "draft")
