import copy
import json

import pytest

from config import Settings
from errors import UpstreamError
from schemas import StudyPackage
from store import SqlStore

STUDY_TEXT = (
    "Photosynthesis is the process by which green plants and some other organisms use sunlight "
    "to synthesize foods from carbon dioxide and water. It generally involves the green pigment "
    "chlorophyll and generates oxygen as a byproduct."
)


def make_payload(quiz_len=10, concepts=5):
    return {
        "summary": "Photosynthesis turns light into chemical energy. Plants release oxygen as a byproduct.",
        "keyConcepts": [
            {
                "term": f"Term {i}",
                "definition": f"Definition number {i} explaining the idea in enough words for a student.",
                "example": f"Example {i}",
            }
            for i in range(concepts)
        ],
        "quiz": [
            {
                "question": f"Question {i}?",
                "bloomLevel": "Knowledge",
                "options": ["A", "B", "C", "D"],
                "correctAnswer": i % 4,
                "explanation": f"Because of reason {i}.",
            }
            for i in range(quiz_len)
        ],
    }


class FakeClient:
    """Stands in for AnalysisClient; returns canned text or raises."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else json.dumps(make_payload())
        self.error = error
        self.requests = []

    def analyze(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response

    def ping(self):
        return {"ok": True, "model": "fake", "content": "OK"}


@pytest.fixture
def payload():
    return copy.deepcopy(make_payload())


@pytest.fixture
def package(payload):
    return StudyPackage.model_validate(payload)


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def failing_client():
    return FakeClient(error=UpstreamError("quota exceeded"))


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite:///{tmp_path / 'test_studypack.db'}")


@pytest.fixture
def store(settings):
    s = SqlStore(settings.database_url, settings.token_ttl_hours)
    yield s
    s.engine.dispose()
