from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import InfrastructureError, NotFoundError, ValidationError
from ..generation import QuestionGenerator, get_generator
from ..models import LEVELS, ListeningAttempt, ListeningExercise, User
from ..responses import paginate, pagination_meta, success_response
from ..scoring import grade_listening, percentage_score
from ..security import get_current_user, require_admin
from ..validators import ensure_valid, validate_choice, violation


router = APIRouter(prefix="/listening", tags=["listening"])
logger = logging.getLogger(__name__)


class ListeningGenerateRequest(BaseModel):
    topic: str = "general"
    difficulty: Any = "intermediate"


class ListeningSubmitRequest(BaseModel):
    exerciseId: str
    answers: List[Dict[str, Any]] = Field(default_factory=list)
    startTime: datetime
    endTime: datetime


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _serialize_exercise(exercise: ListeningExercise) -> Dict[str, Any]:
    return {
        "id": exercise.id,
        "title": exercise.title,
        "topic": exercise.topic,
        "difficulty": exercise.difficulty,
        "duration": exercise.duration,
        # Answers stay server-side until submission
        "questions": [
            {k: v for k, v in q.items() if k not in ("correctAnswer", "explanation")}
            for q in exercise.questions or []
        ],
        "createdAt": exercise.created_at,
    }


def _get_exercise(db: Session, exercise_id: str) -> ListeningExercise:
    exercise = db.get(ListeningExercise, exercise_id)
    if exercise is None or not exercise.is_active:
        raise NotFoundError("Listening exercise not found")
    return exercise


@router.post("/generate")
async def generate_exercise(
    req: ListeningGenerateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    generator: QuestionGenerator = Depends(get_generator),
):
    ensure_valid(validate_choice("difficulty", req.difficulty, LEVELS))
    topic = req.topic.strip() or "general"
    difficulty = req.difficulty.lower()
    draft = await generator.generate_listening_exercise(topic, difficulty)

    exercise = ListeningExercise(
        title=f"Listening Exercise - {topic}",
        conversation=draft.conversation,
        questions=[q.model_dump() for q in draft.questions],
        difficulty=difficulty,
        topic=topic,
        created_by=user.id,
    )
    try:
        db.add(exercise)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InfrastructureError("Could not save listening exercise") from exc
    db.refresh(exercise)
    logger.info("Listening exercise %s generated for %s", exercise.id, user.email)
    return success_response(
        "Listening exercise generated",
        {"exercise": _serialize_exercise(exercise), "conversationForTTS": exercise.conversation},
        201,
    )


@router.post("/submit")
async def submit_exercise(
    req: ListeningSubmitRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    exercise = _get_exercise(db, req.exerciseId)
    start = _naive_utc(req.startTime)
    end = _naive_utc(req.endTime)
    if end < start:
        raise ValidationError("endTime must not be before startTime", [violation("endTime", "endTime must not be before startTime")])

    questions = exercise.questions or []
    results, correct = grade_listening(questions, req.answers)
    total = len(questions)
    score = percentage_score(correct, total)
    minutes = round((end - start).total_seconds() / 60)

    attempt = ListeningAttempt(
        user_id=user.id,
        exercise_id=exercise.id,
        answers=[{"questionId": r["questionId"], "answer": r["userAnswer"], "isCorrect": r["isCorrect"]} for r in results],
        score=score,
        total_questions=total,
        correct_answers=correct,
        start_time=start,
        end_time=end,
        total_time_spent=minutes,
    )
    try:
        db.add(attempt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InfrastructureError("Could not save attempt") from exc
    db.refresh(attempt)

    return success_response(
        "Exercise submitted",
        {
            "attemptId": attempt.id,
            "score": score,
            "correctAnswers": correct,
            "totalQuestions": total,
            "totalTimeSpent": minutes,
            "results": results,
        },
        201,
    )


@router.get("/history")
async def history(
    page: int = 1,
    limit: int = 10,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page, limit, offset = paginate(page, limit)
    query = db.query(ListeningAttempt).filter(ListeningAttempt.user_id == user.id)
    total = query.count()
    attempts = query.order_by(ListeningAttempt.created_at.desc()).offset(offset).limit(limit).all()
    titles = {}
    if attempts:
        rows = db.query(ListeningExercise).filter(ListeningExercise.id.in_({a.exercise_id for a in attempts})).all()
        titles = {e.id: (e.title, e.topic, e.difficulty) for e in rows}
    items = []
    for a in attempts:
        title, topic, difficulty = titles.get(a.exercise_id, (None, None, None))
        items.append({
            "id": a.id,
            "exerciseId": a.exercise_id,
            "title": title,
            "topic": topic,
            "difficulty": difficulty,
            "score": a.score,
            "correctAnswers": a.correct_answers,
            "totalQuestions": a.total_questions,
            "totalTimeSpent": a.total_time_spent,
            "createdAt": a.created_at,
        })
    return success_response("Listening history retrieved", {"attempts": items, "pagination": pagination_meta(page, limit, total)})


@router.get("/exercises")
async def list_exercises(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    exercises = db.query(ListeningExercise).order_by(ListeningExercise.created_at.desc()).all()
    return success_response("Listening exercises retrieved", {"exercises": [_serialize_exercise(e) for e in exercises]})


@router.get("/{exercise_id}/conversation")
async def get_conversation(exercise_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    exercise = _get_exercise(db, exercise_id)
    return success_response("Conversation retrieved", {"conversation": exercise.conversation})
