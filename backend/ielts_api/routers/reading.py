from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import InfrastructureError, NotFoundError, ValidationError
from ..generation import OPTION_LETTERS, THEME_DESCRIPTIONS, QuestionGenerator, get_generator
from ..models import LEVELS, ReadingTest, ReadingTestAttempt, User
from ..responses import paginate, pagination_meta, success_response
from ..scoring import (
    band_score,
    elapsed_minutes,
    grade_reading,
    reading_feedback,
    reading_performance,
    running_average,
)
from ..security import get_current_user
from ..validators import ensure_valid, validate_choice, validate_range, violation


router = APIRouter(prefix="/reading", tags=["reading"])
logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT = 20
# Per-question time is reported in seconds
MAX_TIME_SPENT_SECONDS = 24 * 60 * 60


class GenerateTestRequest(BaseModel):
    theme: Any = "science"
    level: Any = "intermediate"
    wordCount: Any = 500
    title: Optional[str] = None


class ReadingSubmitRequest(BaseModel):
    answers: List[Dict[str, Any]] = Field(default_factory=list)
    startTime: datetime
    endTime: datetime


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _public_question(question: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in question.items() if k not in ("correctAnswer", "explanation")}


def _serialize_test(test: ReadingTest, *, with_answers: bool = False) -> Dict[str, Any]:
    questions = test.questions or []
    return {
        "id": test.id,
        "title": test.title,
        "passage": {
            "title": test.passage_title,
            "content": test.passage_content,
            "summary": test.passage_summary,
            "wordCount": test.word_count,
        },
        "theme": test.theme,
        "level": test.level,
        "questions": questions if with_answers else [_public_question(q) for q in questions],
        "timeLimit": test.time_limit,
        "statistics": {
            "totalAttempts": test.total_attempts,
            "averageScore": test.average_score,
            "averageTimeSpent": test.average_time_spent,
        },
        "createdBy": test.created_by,
        "createdAt": test.created_at,
    }


def _serialize_attempt(attempt: ReadingTestAttempt, test: Optional[ReadingTest]) -> Dict[str, Any]:
    return {
        "id": attempt.id,
        "testId": attempt.test_id,
        "testTitle": test.title if test is not None else None,
        "theme": test.theme if test is not None else None,
        "level": test.level if test is not None else None,
        "score": {
            "correctAnswers": attempt.correct_answers,
            "totalQuestions": len(attempt.answers or []),
            "percentage": attempt.percentage,
            "bandScore": attempt.band_score,
        },
        "totalTimeSpent": attempt.total_time_spent,
        "startTime": attempt.start_time,
        "endTime": attempt.end_time,
        "createdAt": attempt.created_at,
    }


def _get_active_test(db: Session, test_id: str) -> ReadingTest:
    test = db.get(ReadingTest, test_id)
    if test is None or not test.is_active:
        raise NotFoundError("Reading test not found")
    return test


@router.post("/generate-test")
async def generate_test(
    req: GenerateTestRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    generator: QuestionGenerator = Depends(get_generator),
):
    ensure_valid(
        validate_choice("theme", req.theme, THEME_DESCRIPTIONS)
        + validate_choice("level", req.level, LEVELS)
        + validate_range("wordCount", req.wordCount, 200, 1000)
    )
    theme = req.theme.lower()
    level = req.level.lower()
    passage, _ = await generator.generate_ielts_passage(theme, level, int(req.wordCount))
    questions = await generator.generate_passage_questions(passage.content, level)

    test = ReadingTest(
        title=(req.title or "").strip() or f"IELTS Reading: {passage.title}",
        passage_title=passage.title,
        passage_content=passage.content,
        passage_summary=passage.summary,
        word_count=passage.wordCount,
        theme=theme,
        level=level,
        questions=[q.model_dump() for q in questions],
        time_limit=DEFAULT_TIME_LIMIT,
        created_by=user.id,
    )
    try:
        db.add(test)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InfrastructureError("Could not save reading test") from exc
    db.refresh(test)
    logger.info("Reading test %s generated for %s (%s, %s)", test.id, user.email, theme, level)
    return success_response("Reading test generated", {"test": _serialize_test(test, with_answers=True)}, 201)


@router.get("/tests")
async def list_tests(
    theme: Optional[str] = None,
    level: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
):
    violations = []
    if theme:
        violations += validate_choice("theme", theme, THEME_DESCRIPTIONS)
    if level:
        violations += validate_choice("level", level, LEVELS)
    ensure_valid(violations)
    page, limit, offset = paginate(page, limit)
    query = db.query(ReadingTest).filter(ReadingTest.is_active.is_(True))
    if theme:
        query = query.filter(ReadingTest.theme == theme.lower())
    if level:
        query = query.filter(ReadingTest.level == level.lower())
    total = query.count()
    tests = query.order_by(ReadingTest.created_at.desc()).offset(offset).limit(limit).all()
    return success_response(
        "Reading tests retrieved",
        {"tests": [_serialize_test(t) for t in tests], "pagination": pagination_meta(page, limit, total)},
    )


@router.get("/tests/{test_id}")
async def get_test(test_id: str, db: Session = Depends(get_db)):
    test = _get_active_test(db, test_id)
    return success_response("Reading test retrieved", {"test": _serialize_test(test)})


@router.post("/submit/{test_id}")
async def submit_test(
    test_id: str,
    req: ReadingSubmitRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    test = _get_active_test(db, test_id)
    questions: List[Dict[str, Any]] = test.questions or []
    if len(req.answers) != len(questions):
        raise ValidationError(
            f"Expected {len(questions)} answers, got {len(req.answers)}",
            [violation("answers", f"exactly {len(questions)} answers are required", "wrong_count")],
        )
    bad = [
        violation(f"answers.{i}.selectedAnswer", "selectedAnswer must be one of A, B, C, D", "invalid_choice")
        for i, a in enumerate(req.answers)
        if str(a.get("selectedAnswer", "")).strip().upper() not in OPTION_LETTERS
    ]
    for i, a in enumerate(req.answers):
        if a.get("timeSpent") is not None:
            bad += validate_range(f"answers.{i}.timeSpent", a["timeSpent"], 0, MAX_TIME_SPENT_SECONDS)
    ensure_valid(bad)
    start = _naive_utc(req.startTime)
    end = _naive_utc(req.endTime)
    if end < start:
        raise ValidationError("endTime must not be before startTime", [violation("endTime", "endTime must not be before startTime")])

    graded, correct = grade_reading(questions, req.answers)
    total = len(questions)
    percentage = round(correct / total * 100, 2) if total else 0.0
    band = band_score(percentage)
    minutes = elapsed_minutes(start, end)
    performance = reading_performance(questions, graded)
    feedback = reading_feedback(percentage, performance)

    attempt = ReadingTestAttempt(
        user_id=user.id,
        test_id=test.id,
        answers=graded,
        correct_answers=correct,
        percentage=percentage,
        band_score=band,
        start_time=start,
        end_time=end,
        total_time_spent=minutes,
        performance=performance,
        feedback=feedback,
    )
    try:
        db.add(attempt)
        test.average_score = running_average(test.average_score, test.total_attempts, percentage)
        test.average_time_spent = running_average(test.average_time_spent, test.total_attempts, minutes)
        test.total_attempts += 1
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InfrastructureError("Could not save attempt") from exc
    db.refresh(attempt)

    return success_response(
        "Test submitted",
        {
            "attemptId": attempt.id,
            "score": {
                "correctAnswers": correct,
                "totalQuestions": total,
                "percentage": percentage,
                "bandScore": band,
            },
            "timing": {"startTime": start, "endTime": end, "totalTimeSpent": minutes},
            "performance": performance,
            "feedback": feedback,
        },
        201,
    )


@router.get("/my-attempts")
async def my_attempts(
    page: int = 1,
    limit: int = 10,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page, limit, offset = paginate(page, limit)
    query = db.query(ReadingTestAttempt).filter(ReadingTestAttempt.user_id == user.id)
    total = query.count()
    attempts = query.order_by(ReadingTestAttempt.created_at.desc()).offset(offset).limit(limit).all()
    tests = {t.id: t for t in db.query(ReadingTest).filter(ReadingTest.id.in_({a.test_id for a in attempts})).all()} if attempts else {}
    return success_response(
        "Attempts retrieved",
        {
            "attempts": [_serialize_attempt(a, tests.get(a.test_id)) for a in attempts],
            "pagination": pagination_meta(page, limit, total),
        },
    )
