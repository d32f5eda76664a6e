from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from sqlalchemy.orm import Session

from .errors import ValidationError, VisionGradingError, parse_id
from .gemini_client import GeminiClient, image_part, parse_json_reply
from .grading import GradingResult, VisionVerdict, grade_from_verdicts
from .identity import Learner
from .progress import record_graded_exercise, resolve_submittable
from .settings import settings

logger = logging.getLogger(__name__)


@dataclass
class EssayImage:
	data: bytes
	mime_type: str = "image/jpeg"


class EssayImageGrader(Protocol):
	async def grade(self, image: EssayImage, question: str, answer: str) -> VisionVerdict:
		...


def _build_grading_prompt(question: str, answer: str) -> str:
	return (
		"You are a teacher grading a student's handwritten answer shown in the image.\n\n"
		f"Question: {question}\n"
		f"Correct answer: {answer}\n\n"
		"Read the handwritten answer, grade it from 0 to 100, give short constructive feedback, "
		f"and decide whether it is correct (score >= {settings.vision_pass_score:g}).\n\n"
		"Return ONLY a JSON object with keys: score (number 0-100), feedback (string), isCorrect (boolean)."
	)


def verdict_from_reply(data: Dict[str, Any]) -> VisionVerdict:
	try:
		score = float(data.get("score") or 0)
	except (TypeError, ValueError):
		score = 0.0
	score = max(0.0, min(100.0, score))
	is_correct = data.get("isCorrect")
	if not isinstance(is_correct, bool):
		is_correct = score >= settings.vision_pass_score
	feedback = str(data.get("feedback") or "").strip() or "No feedback returned."
	return VisionVerdict(score=score, feedback=feedback, is_correct=is_correct)


class GeminiEssayGrader:
	def __init__(self, client: Optional[GeminiClient] = None) -> None:
		self._client = client

	async def grade(self, image: EssayImage, question: str, answer: str) -> VisionVerdict:
		client = self._client or GeminiClient(model=settings.gemini_model_vision or settings.gemini_model)
		try:
			parts = [{"text": _build_grading_prompt(question, answer)}, image_part(image.data, image.mime_type)]
			reply = await client.generate_multimodal(parts, json_mode=True)
			return verdict_from_reply(parse_json_reply(reply))
		finally:
			if self._client is None:
				await client.aclose()


async def grade_essay_images(exercise: Any, images: Sequence[EssayImage], grader: EssayImageGrader) -> GradingResult:
	"""Grade image ``i`` against question ``i``; extra images are ignored."""
	verdicts: Dict[str, VisionVerdict] = {}
	for question, image in zip(exercise.questions, images):
		try:
			verdicts[str(question.id)] = await grader.grade(image, question.question, question.answer)
		except (httpx.HTTPError, RuntimeError, ValueError) as exc:
			logger.exception("vision grading failed for question %s", question.id)
			raise VisionGradingError(f"could not grade the image for question {question.id}") from exc
	return grade_from_verdicts(exercise, verdicts)


async def submit_essay_images(
	db: Session,
	learner: Learner,
	exercise_id: Any,
	images: List[EssayImage],
	grader: EssayImageGrader,
) -> Dict[str, Any]:
	exercise, pool = resolve_submittable(db, learner, parse_id(exercise_id, "exercise"))
	if exercise.type != "essay":
		raise ValidationError(f"exercise {exercise.id} is not an essay exercise")
	if not images:
		raise ValidationError("at least one image is required")
	result = await grade_essay_images(exercise, images, grader)
	logger.info(
		"user %s submitted %s essay image(s) for exercise %s: score %.1f",
		learner.user_id, len(images), exercise.id, result.score,
	)
	return record_graded_exercise(db, learner, exercise, pool, result)
