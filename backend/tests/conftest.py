import json
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="ielts-uploads-")
os.environ["SEED_ADMIN_EMAIL"] = "admin@example.com"
os.environ["SEED_ADMIN_PASSWORD"] = "Adm1n!pass"
os.environ["ALLOW_ADMIN_SIGNUP"] = "false"
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from ielts_api.generation import QuestionGenerator, get_generator
from ielts_api.main import app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1n!pass"
STRONG_PASSWORD = "Passw0rd!"


class FakeGemini:
    """Stands in for GeminiClient: returns queued replies in order and records prompts."""

    def __init__(self):
        self.replies = []
        self.prompts = []

    def queue(self, *replies):
        for reply in replies:
            self.replies.append(reply if isinstance(reply, str) else json.dumps(reply))

    async def generate(self, prompt, *, json_output=False, thinking_budget=None):
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError("FakeGemini has no reply queued")
        return self.replies.pop(0)


def mcq_payload(count, topic="English Grammar"):
    return {
        "questions": [
            {
                "question": f"{topic} question {i}?",
                "options": ["alpha", "beta", "gamma", "delta"],
                "correctAnswer": "B",
                "explanation": "beta is right",
            }
            for i in range(1, count + 1)
        ]
    }


def passage_payload(words=300):
    return {
        "passage": {
            "title": "Coral Reefs",
            "content": " ".join(["reef"] * words),
            "summary": "About reefs.",
        }
    }


def reading_questions_payload(count=10):
    difficulties = ["easy", "medium", "hard"]
    types = ["detail", "main_idea", "inference", "vocabulary", "reference"]
    return {
        "questions": [
            {
                "questionText": f"Reading question {i}?",
                "options": {"A": "one", "B": "two", "C": "three", "D": "four"},
                "correctAnswer": "A",
                "explanation": "Stated in paragraph one.",
                "difficulty": difficulties[i % 3],
                "questionType": types[i % 5],
            }
            for i in range(count)
        ]
    }


def listening_payload():
    return {
        "conversation": "Speaker A: Hello. Speaker B: Hi, I'd like to book a room.",
        "questions": [
            {"id": "q1", "type": "mcq", "question": "What is booked?", "options": ["room", "car", "table"], "correctAnswer": "room", "explanation": "B says room."},
            {"id": "q2", "type": "true_false", "question": "B is rude.", "correctAnswer": "false", "explanation": "Polite."},
            {"id": "q3", "type": "matching", "question": "Match speakers.", "options": ["A", "B"], "correctAnswer": ["A", "B"], "explanation": "Both talk."},
            {"id": "q4", "type": "mcq", "question": "Who greets first?", "options": ["A", "B"], "correctAnswer": "A", "explanation": ""},
            {"id": "q5", "type": "true_false", "question": "It is a phone call.", "correctAnswer": True, "explanation": ""},
            {"id": "q6", "type": "mcq", "question": "How many speakers?", "options": ["one", "two"], "correctAnswer": "two", "explanation": ""},
        ],
    }


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def client(fake_gemini):
    app.dependency_overrides[get_generator] = lambda: QuestionGenerator(fake_gemini)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, email="student@example.com", password=STRONG_PASSWORD, name="Student", **extra):
    return client.post("/auth/signup", json={"name": name, "email": email, "password": password, **extra})


def login(client, email, password):
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture
def student_token(client):
    res = signup(client)
    assert res.status_code == 201, res.text
    return res.json()["data"]["token"]


@pytest.fixture
def admin_token(client):
    res = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert res.status_code == 200, res.text
    return res.json()["data"]["token"]
