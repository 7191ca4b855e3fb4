from __future__ import annotations
import math
from typing import Iterable, Optional

MIN_BAND = 0.0
MAX_BAND = 9.0


def is_number(value) -> bool:
	# bool is an int subclass but never a band
	return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def round_half(value: float) -> float:
	"""Round to the nearest 0.5, halves going up (6.25 -> 6.5, 6.75 -> 7.0)."""
	return math.floor(value * 2 + 0.5) / 2


def clamp_band(value: float) -> float:
	return max(MIN_BAND, min(MAX_BAND, value))


def overall_from(subscores: Iterable) -> Optional[float]:
	values = [float(v) for v in subscores if is_number(v)]
	if not values:
		return None
	return clamp_band(round_half(sum(values) / len(values)))
