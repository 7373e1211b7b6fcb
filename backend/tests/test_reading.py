import pytest

from conftest import auth_header, passage_payload, reading_questions_payload

START = "2024-05-01T10:00:00Z"
END = "2024-05-01T10:12:30Z"


@pytest.fixture
def reading_test(client, student_token, fake_gemini):
    fake_gemini.queue(passage_payload(), reading_questions_payload())
    res = client.post(
        "/reading/generate-test",
        json={"theme": "environment", "level": "advanced", "wordCount": 400},
        headers=auth_header(student_token),
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]["test"]


def _answers(letters):
    return [{"selectedAnswer": letter, "timeSpent": 20} for letter in letters]


def test_generate_test_requires_auth(client):
    assert client.post("/reading/generate-test", json={}).status_code == 401


def test_generate_test_stores_passage_and_questions(reading_test, fake_gemini):
    assert reading_test["title"] == "IELTS Reading: Coral Reefs"
    assert reading_test["theme"] == "environment"
    assert reading_test["level"] == "advanced"
    assert reading_test["timeLimit"] == 20
    assert len(reading_test["questions"]) == 10
    assert reading_test["questions"][0]["correctAnswer"] == "A"
    # The question prompt is built from the generated passage
    assert "reef" in fake_gemini.prompts[1]


def test_generate_test_validates_theme(client, student_token):
    res = client.post("/reading/generate-test", json={"theme": "cooking"}, headers=auth_header(student_token))
    assert res.status_code == 400


def test_public_views_hide_answers(client, reading_test):
    listed = client.get("/reading/tests", params={"theme": "environment"}).json()["data"]
    assert listed["pagination"]["total"] == 1
    for q in listed["tests"][0]["questions"]:
        assert "correctAnswer" not in q
        assert "explanation" not in q

    single = client.get(f"/reading/tests/{reading_test['id']}")
    assert single.status_code == 200
    assert all("correctAnswer" not in q for q in single.json()["data"]["test"]["questions"])

    assert client.get("/reading/tests", params={"level": "beginner"}).json()["data"]["tests"] == []


def test_unknown_test_is_404(client, student_token):
    assert client.get("/reading/tests/nope").status_code == 404
    res = client.post("/reading/submit/nope", json={"answers": [], "startTime": START, "endTime": END}, headers=auth_header(student_token))
    assert res.status_code == 404


def test_submit_scores_and_updates_statistics(client, student_token, reading_test):
    res = client.post(
        f"/reading/submit/{reading_test['id']}",
        json={"answers": _answers("AAAAAAABBB"), "startTime": START, "endTime": END},
        headers=auth_header(student_token),
    )
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["attemptId"]
    assert data["score"] == {"correctAnswers": 7, "totalQuestions": 10, "percentage": 70.0, "bandScore": 7}
    assert data["timing"]["totalTimeSpent"] == 12
    assert set(data["performance"]) == {"difficultyBreakdown", "questionTypeBreakdown"}
    assert data["feedback"]["overallComment"].startswith("Good")

    stats = client.get(f"/reading/tests/{reading_test['id']}").json()["data"]["test"]["statistics"]
    assert stats == {"totalAttempts": 1, "averageScore": 70.0, "averageTimeSpent": 12.0}

    client.post(
        f"/reading/submit/{reading_test['id']}",
        json={"answers": _answers("A" * 10), "startTime": START, "endTime": "2024-05-01T10:08:00Z"},
        headers=auth_header(student_token),
    )
    stats = client.get(f"/reading/tests/{reading_test['id']}").json()["data"]["test"]["statistics"]
    assert stats == {"totalAttempts": 2, "averageScore": 85.0, "averageTimeSpent": 10.0}

    attempts = client.get("/reading/my-attempts", headers=auth_header(student_token)).json()["data"]
    assert attempts["pagination"]["total"] == 2
    assert {a["score"]["bandScore"] for a in attempts["attempts"]} == {7, 9}
    assert attempts["attempts"][0]["testTitle"] == reading_test["title"]


def test_submit_requires_one_answer_per_question(client, student_token, reading_test):
    res = client.post(
        f"/reading/submit/{reading_test['id']}",
        json={"answers": _answers("AAA"), "startTime": START, "endTime": END},
        headers=auth_header(student_token),
    )
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "answers"


def test_submit_rejects_bad_letters_and_reversed_times(client, student_token, reading_test):
    url = f"/reading/submit/{reading_test['id']}"
    bad = client.post(url, json={"answers": _answers("AAAAAAAAAE"), "startTime": START, "endTime": END}, headers=auth_header(student_token))
    assert bad.status_code == 400
    assert bad.json()["errors"][0]["field"] == "answers.9.selectedAnswer"

    reversed_times = client.post(url, json={"answers": _answers("A" * 10), "startTime": END, "endTime": START}, headers=auth_header(student_token))
    assert reversed_times.status_code == 400
    assert reversed_times.json()["errors"][0]["field"] == "endTime"


def test_submit_requires_auth(client, reading_test):
    res = client.post(f"/reading/submit/{reading_test['id']}", json={"answers": [], "startTime": START, "endTime": END})
    assert res.status_code == 401


def test_generation_failure_stores_nothing(client, student_token, fake_gemini):
    fake_gemini.queue(passage_payload(), {"questions": []})
    res = client.post("/reading/generate-test", json={}, headers=auth_header(student_token))
    assert res.status_code == 502
    assert client.get("/reading/tests").json()["data"]["pagination"]["total"] == 0


@pytest.mark.parametrize("time_spent", ["abc", "1.5", -3, True])
def test_submit_rejects_bad_time_spent(client, student_token, reading_test, time_spent):
    answers = _answers("A" * 10)
    answers[4]["timeSpent"] = time_spent
    res = client.post(
        f"/reading/submit/{reading_test['id']}",
        json={"answers": answers, "startTime": START, "endTime": END},
        headers=auth_header(student_token),
    )
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "answers.4.timeSpent"


def test_submit_accepts_missing_time_spent(client, student_token, reading_test):
    answers = [{"selectedAnswer": "A"} for _ in range(10)]
    res = client.post(
        f"/reading/submit/{reading_test['id']}",
        json={"answers": answers, "startTime": START, "endTime": END},
        headers=auth_header(student_token),
    )
    assert res.status_code == 201
