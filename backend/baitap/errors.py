"""Error taxonomy shared by the grading and progress core.

Each class carries the HTTP status the API layer answers with, so routers
never translate errors by hand.
"""
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class EngineError(Exception):
	status_code = 500

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class ValidationError(EngineError):
	"""Malformed input: bad ids, missing answer maps, unknown question ids."""
	status_code = 400


class NotFoundError(EngineError):
	"""Missing record, or one outside the learner's grade/chapter."""
	status_code = 404


class PersistenceError(EngineError):
	"""The store failed to read or write."""
	status_code = 503


class AggregationInconsistency(EngineError):
	"""An invariant of the stored learner state does not hold."""
	status_code = 500


class VisionGradingError(EngineError):
	"""The external essay-image grader could not produce a verdict."""
	status_code = 502


def parse_id(raw, what: str) -> int:
	try:
		value = int(str(raw).strip())
	except (TypeError, ValueError):
		raise ValidationError(f"invalid {what} id: {raw!r}")
	if value <= 0:
		raise ValidationError(f"invalid {what} id: {raw!r}")
	return value


@contextmanager
def store_errors(db, action: str):
	"""Roll back and re-raise store failures as ``PersistenceError``."""
	try:
		yield
	except SQLAlchemyError as exc:
		db.rollback()
		raise PersistenceError(f"{action} failed") from exc
