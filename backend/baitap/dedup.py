"""Collapse exercises reachable through more than one section link.

Every read site that lists exercises (chapter view, answers view, subject
view, progress recomputation, activity reports) goes through
``deduplicate_exercises`` so their counts agree.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Hashable, Iterable, List, Set, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exercise_key(exercise: Any) -> Tuple[str, str]:
	return (exercise.title, exercise.difficulty)


def deduplicate_exercises(
	exercises: Iterable[T],
	*,
	get_id: Callable[[T], Hashable] = lambda e: e.id,
	get_key: Callable[[T], Hashable] = exercise_key,
) -> List[T]:
	"""Return the first occurrence of each exercise, in input order.

	An item is dropped when its id was already kept, or when a different id
	with the same ``(title, difficulty)`` key was already kept. The caller
	controls the tie-break through input order (lowest section order, then
	lowest exercise order).
	"""
	seen_ids: Set[Hashable] = set()
	seen_keys: Dict[Hashable, Hashable] = {}
	unique: List[T] = []
	for item in exercises:
		item_id = get_id(item)
		if item_id in seen_ids:
			logger.debug("dropping repeated exercise id %s", item_id)
			continue
		key = get_key(item)
		if key in seen_keys:
			logger.debug("dropping exercise %s: same title/difficulty as %s", item_id, seen_keys[key])
			continue
		seen_ids.add(item_id)
		seen_keys[key] = item_id
		unique.append(item)
	return unique

