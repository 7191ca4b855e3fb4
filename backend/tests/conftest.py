import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ielts_practice.db import Base, create_schema, get_db
from ielts_practice.gemini_client import get_client_factory
from ielts_practice.main import app
from ielts_practice.settings import settings


ESSAY = (
	"Many people argue that university education should be free for everyone, while others believe students "
	"ought to pay their own tuition. In my view, governments should cover most of the cost. Firstly, free "
	"tuition widens access for talented young people from poorer families, who might otherwise never apply. "
	"Secondly, a better educated workforce raises productivity and tax revenue, so the investment partly pays "
	"for itself over time. On the other hand, critics point out that public budgets are limited and that "
	"graduates usually earn higher salaries later. A fair compromise would be free study combined with a small "
	"graduate tax. In conclusion, society gains when ability rather than wealth decides who studies."
)

TRANSCRIPT = (
	"I would like to describe a park near my home where I often go running in the early morning. "
	"It is quite peaceful because there are tall trees, a small lake and very few cars nearby, "
	"so I can clear my head before work and plan my day."
)


def writing_reply(overall=6.5, **overrides):
	body = {
		"taskResponse": 6.5,
		"coherence": 6.0,
		"lexical": 7.0,
		"grammar": 6.5,
		"overall": overall,
		"comments": {
			"overview": "A competent answer.",
			"taskResponse": "Both views are covered.",
			"coherence": "Clear paragraphing.",
			"lexical": "Good range.",
			"grammar": "Mostly accurate.",
			"advice": "Develop the second body paragraph.",
		},
	}
	body.update(overrides)
	return "```json\n" + json.dumps(body) + "\n```"


def speaking_reply(**overrides):
	body = {
		"overall_band": 6.5,
		"fluency_coherence": 6.5,
		"lexical_resource": 6.0,
		"grammatical_range_accuracy": 6.5,
		"pronunciation": 7.0,
		"estimated_words": 48,
		"estimated_duration_seconds": 20,
		"part": "part2",
		"band_explanation_overall": "Fluent with some simple structures.",
		"strengths": ["Clear description"],
		"weaknesses": ["Limited complex grammar"],
		"improvement_tips": ["Use more subordinate clauses"],
	}
	body.update(overrides)
	return json.dumps(body)


class FakeScoringClient:
	"""Stands in for GeminiClient; replies are consumed in order."""

	def __init__(self):
		self.replies = []
		self.calls = []
		self.closed = 0

	async def generate(self, prompt, *, model=None, max_output_tokens=None):
		self.calls.append({"prompt": prompt, "model": model})
		if not self.replies:
			raise AssertionError("scoring engine called unexpectedly")
		reply = self.replies.pop(0)
		if isinstance(reply, Exception):
			raise reply
		return reply

	async def aclose(self):
		self.closed += 1


@pytest.fixture
def session_factory():
	engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
	create_schema(engine)
	factory = sessionmaker(autoflush=False, bind=engine)
	yield factory
	Base.metadata.drop_all(bind=engine)
	engine.dispose()


@pytest.fixture
def db(session_factory):
	session = session_factory()
	try:
		yield session
	finally:
		session.close()


@pytest.fixture
def scorer():
	return FakeScoringClient()


@pytest.fixture
def client(session_factory, scorer, monkeypatch):
	def _get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	monkeypatch.setattr(settings, "ai_pro_mode", False)
	monkeypatch.setattr(settings, "gemini_model_free", "free-model")
	monkeypatch.setattr(settings, "gemini_model_pro", "pro-model")
	app.dependency_overrides[get_db] = _get_db
	app.dependency_overrides[get_client_factory] = lambda: (lambda: scorer)
	try:
		yield TestClient(app)
	finally:
		app.dependency_overrides.clear()


@pytest.fixture
def keyless_client(client, monkeypatch):
	"""API client wired to the real Gemini client constructor with no key configured."""
	monkeypatch.setattr(settings, "gemini_api_key", None)
	app.dependency_overrides.pop(get_client_factory)
	return client
