from __future__ import annotations
from typing import Optional

from pydantic import BaseModel

from .difficulty import resolve_difficulty
from .errors import ValidationError


class Learner(BaseModel):
	"""Authenticated caller as vouched for by the identity provider."""
	user_id: int
	username: str
	level: Optional[int] = None
	grade_id: Optional[int] = None

	@property
	def difficulty(self) -> str:
		return resolve_difficulty(self.level)

	def require_grade(self) -> int:
		if not self.grade_id:
			raise ValidationError("learner has no grade; update the profile first")
		return self.grade_id
