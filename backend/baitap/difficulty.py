from __future__ import annotations
from typing import Any, List


# Learner levels 1-12 map onto three content tiers of four levels each
_TIER_BOUNDS = (
	(1, 4, "easy"),
	(5, 8, "medium"),
	(9, 12, "hard"),
)


def resolve_difficulty(level: Any) -> str:
	"""Map a learner level to the exercise tier they are served.

	Total over any input: missing, zero, negative, out-of-range or
	non-integer levels fall back to "easy".
	"""
	try:
		value = int(level)
	except (TypeError, ValueError):
		return "easy"
	for low, high, tier in _TIER_BOUNDS:
		if low <= value <= high:
			return tier
	return "easy"


def difficulties_up_to(level: Any) -> List[str]:
	try:
		value = int(level)
	except (TypeError, ValueError):
		return []
	return [tier for low, _high, tier in _TIER_BOUNDS if value >= low]
