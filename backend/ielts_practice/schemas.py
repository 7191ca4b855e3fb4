from __future__ import annotations
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .bands import overall_from, round_half

Band = float

WRITING_CRITERIA = ("taskResponse", "coherence", "lexical", "grammar")
SPEAKING_CRITERIA = ("fluency_coherence", "lexical_resource", "grammatical_range_accuracy", "pronunciation")

SpeakingPart = Literal["part1", "part2", "part3", "unknown"]


def _snap(value: float) -> float:
	return round_half(float(value))


class WritingComments(BaseModel):
	model_config = ConfigDict(extra="allow")

	overview: str
	taskResponse: str
	coherence: str
	lexical: str
	grammar: str
	advice: str
	# Long-form examiner feedback, requested for Pro scoring only
	long_overall: Optional[str] = None
	long_taskResponse: Optional[str] = None
	long_coherence: Optional[str] = None
	long_lexical: Optional[str] = None
	long_grammar: Optional[str] = None


class WritingScore(BaseModel):
	"""Band score record for one essay, as returned by the examiner model."""
	model_config = ConfigDict(extra="allow")

	taskResponse: Band = Field(ge=0, le=9)
	coherence: Band = Field(ge=0, le=9)
	lexical: Band = Field(ge=0, le=9)
	grammar: Band = Field(ge=0, le=9)
	overall: Band = Field(ge=0, le=9)
	comments: WritingComments

	@field_validator("taskResponse", "coherence", "lexical", "grammar", "overall")
	@classmethod
	def snap_bands(cls, value: float) -> float:
		return _snap(value)

	@property
	def computed_overall(self) -> Optional[float]:
		return overall_from(getattr(self, k) for k in WRITING_CRITERIA)


class SpeakingScore(BaseModel):
	"""Band score record for one spoken answer."""
	model_config = ConfigDict(extra="allow")

	overall_band: Band = Field(ge=0, le=9)
	fluency_coherence: Band = Field(ge=0, le=9)
	lexical_resource: Band = Field(ge=0, le=9)
	grammatical_range_accuracy: Band = Field(ge=0, le=9)
	pronunciation: Band = Field(ge=0, le=9)
	estimated_words: int = 0
	estimated_duration_seconds: float = 0
	part: SpeakingPart = "unknown"
	band_explanation_overall: str = ""
	strengths: List[str] = Field(default_factory=list)
	weaknesses: List[str] = Field(default_factory=list)
	improvement_tips: List[str] = Field(default_factory=list)
	long_feedback_overall: Optional[str] = None
	long_feedback_fluency_coherence: Optional[str] = None
	long_feedback_lexical_resource: Optional[str] = None
	long_feedback_grammar_pronunciation: Optional[str] = None

	@field_validator(
		"overall_band", "fluency_coherence", "lexical_resource", "grammatical_range_accuracy", "pronunciation"
	)
	@classmethod
	def snap_bands(cls, value: float) -> float:
		return _snap(value)

	@field_validator("part", mode="before")
	@classmethod
	def coerce_part(cls, value):
		return value if value in ("part1", "part2", "part3") else "unknown"

	@property
	def computed_overall(self) -> Optional[float]:
		return overall_from(getattr(self, k) for k in SPEAKING_CRITERIA)
