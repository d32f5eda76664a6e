from __future__ import annotations
from typing import Any, List

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..identity import Learner
from ..progress import submit_exercise
from ..vision import EssayImage, EssayImageGrader, GeminiEssayGrader, submit_essay_images
from .auth import get_current_learner


router = APIRouter(prefix="/exercises", tags=["exercises"])


class SubmitExerciseRequest(BaseModel):
	# {questionId: "answer"}; shape is checked by the grading core
	answers: Any = None


def get_essay_grader() -> EssayImageGrader:
	return GeminiEssayGrader()


@router.post("/{exercise_id}/submit")
async def submit(
	exercise_id: str,
	req: SubmitExerciseRequest,
	learner: Learner = Depends(get_current_learner),
	db: Session = Depends(get_db),
):
	return submit_exercise(db, learner, exercise_id, req.answers)


@router.post("/{exercise_id}/submit/images")
async def submit_images(
	exercise_id: str,
	files: List[UploadFile] = File(...),
	learner: Learner = Depends(get_current_learner),
	db: Session = Depends(get_db),
	grader: EssayImageGrader = Depends(get_essay_grader),
):
	images = [EssayImage(data=await f.read(), mime_type=f.content_type or "image/jpeg") for f in files]
	return await submit_essay_images(db, learner, exercise_id, images, grader)
